"""Tests for the story status state machine."""

import pytest

from roadmap.pm import planning
from roadmap.pm.lifecycle import InvalidTransition, StoryLifecycle, mark_story
from roadmap.pm.state import NotFoundError

from conftest import story


class TestStoryLifecycle:
    """Tests for StoryLifecycle transitions."""

    @pytest.mark.parametrize("source,dest", [
        ("todo", "assigned"),
        ("todo", "in_progress"),
        ("assigned", "in_progress"),
        ("in_progress", "review"),
        ("review", "done"),
        ("review", "in_progress"),
        ("in_progress", "blocked"),
        ("blocked", "in_progress"),
        ("todo", "deferred"),
        ("deferred", "todo"),
        ("done", "todo"),
    ])
    def test_allowed(self, source, dest):
        s = story("E1.S1", status=source)
        assert StoryLifecycle(s).move_to(dest) is True
        assert s.status == dest

    @pytest.mark.parametrize("source,dest", [
        ("todo", "review"),
        ("done", "in_progress"),
        ("done", "blocked"),
        ("deferred", "in_progress"),
    ])
    def test_denied(self, source, dest):
        s = story("E1.S1", status=source)
        with pytest.raises(InvalidTransition, match=f"from {source} to {dest}"):
            StoryLifecycle(s).move_to(dest)
        assert s.status == source

    def test_same_status_is_noop(self):
        s = story("E1.S1", status="review")
        assert StoryLifecycle(s).move_to("review") is False

    def test_force(self):
        s = story("E1.S1", status="done")
        calls = []
        lifecycle = StoryLifecycle(s, on_transition=lambda a, b, t: calls.append((a, b, t)))
        assert lifecycle.move_to("in_progress", force=True) is True
        assert s.status == "in_progress"
        assert calls == [("done", "in_progress", "force")]

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            StoryLifecycle(story("E1.S1")).move_to("finished")

    def test_leaving_blocked_clears_reason(self):
        s = story("E1.S1", status="blocked", blocked_reason="waiting on keys")
        StoryLifecycle(s).move_to("in_progress")
        assert s.blocked_reason is None

    def test_reopen_clears_assignee(self):
        s = story("E1.S1", status="in_progress", assignee="worker-1")
        StoryLifecycle(s).move_to("todo")
        assert s.assignee is None

    def test_available_triggers(self):
        lifecycle = StoryLifecycle(story("E1.S1", status="done"))
        assert lifecycle.get_available_triggers() == ["reopen"]
        assert lifecycle.can("reopen")
        assert not lifecycle.can("start")


class TestMarkStory:
    @pytest.fixture
    def seeded(self, state):
        planning.add_milestone(state, "MVP")
        planning.add_epic(state, "M1", "Auth")
        planning.add_story(state, "E1", "Login form")
        return state

    def test_persists_and_counts(self, seeded):
        mark_story(seeded, "E1.S1", "in_progress", assignee="worker-1")
        mark_story(seeded, "E1.S1", "done")

        _, _, stored = seeded.find_story("E1.S1")
        assert stored.status == "done"
        assert stored.assignee == "worker-1"
        assert seeded.read_project().stats.completed_stories == 1

    def test_blocked_reason(self, seeded):
        mark_story(seeded, "E1.S1", "blocked", reason="needs API keys")
        _, _, stored = seeded.find_story("E1.S1")
        assert stored.status == "blocked"
        assert stored.blocked_reason == "needs API keys"

    def test_invalid_transition_not_persisted(self, seeded):
        with pytest.raises(InvalidTransition):
            mark_story(seeded, "E1.S1", "review")
        _, _, stored = seeded.find_story("E1.S1")
        assert stored.status == "todo"

    def test_missing_story(self, seeded):
        with pytest.raises(NotFoundError):
            mark_story(seeded, "E1.S7", "done")
