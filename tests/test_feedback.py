"""Tests for roadmap.pm.feedback module."""

import pytest

from roadmap.pm import planning
from roadmap.pm.feedback import (
    add_feedback,
    add_stuck,
    dismiss_feedback,
    generate_queue_id,
    list_feedback,
    list_stuck,
    resolve_feedback,
    resolve_stuck,
)
from roadmap.pm.lifecycle import mark_story
from roadmap.pm.state import NotFoundError


@pytest.fixture
def seeded(state):
    planning.add_milestone(state, "MVP")
    planning.add_epic(state, "M1", "Auth")
    planning.add_story(state, "E1", "Login form")
    return state


class TestGenerateQueueId:
    def test_padding_and_sequence(self):
        assert generate_queue_id("FB-", []) == "FB-001"
        assert generate_queue_id("FB-", ["FB-001", "FB-009"]) == "FB-010"
        assert generate_queue_id("STK-", ["STK-999"]) == "STK-1000"


class TestFeedback:
    """Tests for the feedback queue."""

    def test_sequential_ids(self, seeded):
        first = add_feedback(seeded, "gap", "Missing error states")
        second = add_feedback(seeded, "question", "Do we support SSO?",
                              affects=[("requirement", "E1.R1")])
        assert (first.id, second.id) == ("FB-001", "FB-002")
        assert second.affects[0].id == "E1.R1"
        assert [f.id for f in list_feedback(seeded)] == ["FB-001", "FB-002"]

    def test_ids_not_reused_after_resolve(self, seeded):
        add_feedback(seeded, "gap", "One")
        resolve_feedback(seeded, "FB-001", changes_made=["Added R3"])
        assert add_feedback(seeded, "gap", "Two").id == "FB-002"

    def test_unknown_type(self, seeded):
        with pytest.raises(ValueError, match="Unknown feedback type"):
            add_feedback(seeded, "complaint", "Too slow")

    def test_blocker_blocks_story(self, seeded):
        """Should mark the story blocked with the feedback ID in the reason."""
        item = add_feedback(seeded, "blocker", "API keys missing", source_type="execution",
                            story_id="E1.S1")
        _, _, stored = seeded.find_story("E1.S1")
        assert stored.status == "blocked"
        assert stored.blocked_reason == f"{item.id}: API keys missing"

    def test_blocker_for_missing_story_queues_nothing(self, seeded):
        with pytest.raises(NotFoundError):
            add_feedback(seeded, "blocker", "Nope", story_id="E1.S9")
        assert list_feedback(seeded, status=None) == []

    def test_blocker_leaves_done_story(self, seeded):
        mark_story(seeded, "E1.S1", "done")
        add_feedback(seeded, "blocker", "Late blocker", story_id="E1.S1")
        _, _, stored = seeded.find_story("E1.S1")
        assert stored.status == "done"

    def test_resolve_archives(self, seeded):
        add_feedback(seeded, "gap", "Missing logout")
        record = resolve_feedback(seeded, "FB-001", changes_made=["Added E1.R2"])
        queue = seeded.read_feedback_queue()
        assert queue.feedback == []
        assert queue.incorporated[0].id == "FB-001"
        assert record.changes_made == ["Added E1.R2"]

    def test_resolve_blocker_keeps_story_blocked(self, seeded):
        add_feedback(seeded, "blocker", "Keys", story_id="E1.S1")
        resolve_feedback(seeded, "FB-001")
        _, _, stored = seeded.find_story("E1.S1")
        assert stored.status == "blocked"

    def test_resolve_blocker_with_unblock(self, seeded):
        add_feedback(seeded, "blocker", "Keys", story_id="E1.S1")
        resolve_feedback(seeded, "FB-001", unblock=True)
        _, _, stored = seeded.find_story("E1.S1")
        assert stored.status == "todo"
        assert stored.blocked_reason is None

    def test_dismiss_keeps_item(self, seeded):
        add_feedback(seeded, "scope", "Add dark mode")
        dismiss_feedback(seeded, "FB-001")
        assert list_feedback(seeded) == []
        assert [f.status for f in list_feedback(seeded, status=None)] == ["dismissed"]

    def test_only_pending_can_be_resolved(self, seeded):
        add_feedback(seeded, "scope", "Add dark mode")
        dismiss_feedback(seeded, "FB-001")
        with pytest.raises(NotFoundError):
            resolve_feedback(seeded, "FB-001")
        with pytest.raises(NotFoundError):
            dismiss_feedback(seeded, "FB-404")


class TestStuck:
    def test_add_and_resolve(self, seeded):
        item = add_stuck(
            seeded, "E1.S1", "test_failure", "Login test flakes",
            attempts=[{"number": 1, "approach": "retry", "result": "failed"}],
            suggested_options=[{"label": "skip", "description": "Mark the test xfail"}],
            priority="high",
        )
        assert item.id == "STK-001"
        assert item.attempts[0].approach == "retry"
        assert [s.id for s in list_stuck(seeded)] == ["STK-001"]

        record = resolve_stuck(seeded, "STK-001", "Fixed the fixture")
        assert record.resolved_by == "human"
        assert list_stuck(seeded) == []
        assert add_stuck(seeded, "E1.S1", "test_failure", "Again").id == "STK-002"

    def test_bad_priority(self, seeded):
        with pytest.raises(ValueError):
            add_stuck(seeded, "E1.S1", "x", "y", priority="urgent")

    def test_resolve_missing(self, seeded):
        with pytest.raises(NotFoundError):
            resolve_stuck(seeded, "STK-007", "n/a")
