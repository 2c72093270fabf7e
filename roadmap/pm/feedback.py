"""
Feedback and stuck queues.

Feedback (FB-001, ...) is raised against the plan while executing or
reviewing stories: a gap in a requirement, a scope question, a blocker.
Blocker feedback against a story also blocks that story. Resolved feedback
moves to the incorporated archive together with the changes made;
dismissed feedback stays in the queue with status dismissed.

Stuck items (STK-001, ...) are tasks a worker gave up on after repeated
attempts. Resolving one moves it to the resolved archive.

IDs are sequential over the queue and its archive and never reused.
"""

import logging
from typing import Iterable, Optional

from roadmap.lib.constants import FEEDBACK_TYPES
from roadmap.lib.ids import next_code
from roadmap.lib.timeutil import now_iso
from roadmap.pm.lifecycle import mark_story
from roadmap.pm.models import (
    AffectedRef,
    FeedbackItem,
    FeedbackSource,
    IncorporatedFeedback,
    ResolvedStuck,
    StuckAttempt,
    StuckItem,
    StuckOption,
)
from roadmap.pm.state import NotFoundError, StateManager

logger = logging.getLogger(__name__)

FEEDBACK_PREFIX = "FB-"
STUCK_PREFIX = "STK-"


def generate_queue_id(prefix: str, existing: Iterable[str]) -> str:
    """Next zero-padded queue ID (FB-001, FB-002, ...)."""
    code = next_code(prefix, existing)
    return f"{prefix}{int(code[len(prefix):]):03d}"


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------

def add_feedback(
    state: StateManager,
    type: str,
    summary: str,
    source_type: str = "user",
    story_id: Optional[str] = None,
    reported_by: Optional[str] = None,
    affects: Iterable[tuple[str, str]] = (),
    suggested_actions: Iterable[str] = (),
    details: Optional[dict] = None,
) -> FeedbackItem:
    """Queue a feedback item.

    Args:
        type: blocker, gap, scope, conflict, question
        affects: (kind, id) pairs, e.g. ("requirement", "E1.R2")

    Raises:
        NotFoundError: If a blocker names a story that does not exist
    """
    if type not in FEEDBACK_TYPES:
        raise ValueError(f"Unknown feedback type: {type} (expected one of {', '.join(FEEDBACK_TYPES)})")

    if type == "blocker" and story_id:
        # Fail before queueing anything
        state.find_story(story_id)

    queue = state.read_feedback_queue()
    item = FeedbackItem(
        id=generate_queue_id(FEEDBACK_PREFIX, queue.all_ids()),
        type=type,
        source=FeedbackSource(type=source_type, story_id=story_id, reported_by=reported_by),
        summary=summary,
        created=now_iso(),
        details=details,
        affects=[AffectedRef(type=kind, id=ref) for kind, ref in affects],
        suggested_actions=list(suggested_actions),
    )
    queue.feedback.append(item)
    state.write_feedback_queue(queue)
    logger.info(f"Feedback {item.id} ({type}): {summary}")

    if type == "blocker" and story_id:
        _, _, story = state.find_story(story_id)
        if story.status in ("done", "deferred"):
            logger.warning(f"[STORY] {story_id} is {story.status}; not blocking it for {item.id}")
        else:
            mark_story(state, story_id, "blocked", reason=f"{item.id}: {summary}")

    return item


def list_feedback(state: StateManager, status: Optional[str] = "pending") -> list[FeedbackItem]:
    """Feedback in the queue, filtered by status (None for all)."""
    queue = state.read_feedback_queue()
    return [f for f in queue.feedback if status is None or f.status == status]


def _take_pending(state: StateManager, feedback_id: str):
    queue = state.read_feedback_queue()
    for item in queue.feedback:
        if item.id == feedback_id and item.status == "pending":
            return queue, item
    raise NotFoundError("Pending feedback", feedback_id)


def resolve_feedback(
    state: StateManager,
    feedback_id: str,
    changes_made: Iterable[str] = (),
    unblock: bool = False,
) -> IncorporatedFeedback:
    """Move pending feedback to the incorporated archive.

    With unblock, a story this feedback blocked goes back to todo.
    """
    queue, item = _take_pending(state, feedback_id)

    record = IncorporatedFeedback(
        id=item.id,
        summary=item.summary,
        incorporated=now_iso(),
        changes_made=list(changes_made),
    )
    queue.feedback = [f for f in queue.feedback if f is not item]
    queue.incorporated.append(record)
    state.write_feedback_queue(queue)
    logger.info(f"Feedback {feedback_id} incorporated ({len(record.changes_made)} changes)")

    story_id = item.source.story_id
    if unblock and item.type == "blocker" and story_id:
        _, _, story = state.find_story(story_id)
        if story.status == "blocked":
            mark_story(state, story_id, "todo")

    return record


def dismiss_feedback(state: StateManager, feedback_id: str) -> FeedbackItem:
    """Mark pending feedback dismissed. It stays in the queue."""
    queue, item = _take_pending(state, feedback_id)
    item.status = "dismissed"
    state.write_feedback_queue(queue)
    logger.info(f"Feedback {feedback_id} dismissed")
    return item


# ---------------------------------------------------------------------------
# Stuck queue
# ---------------------------------------------------------------------------

def add_stuck(
    state: StateManager,
    task_id: str,
    type: str,
    summary: str,
    attempts: Iterable[dict] = (),
    suggested_options: Iterable[dict] = (),
    priority: str = "medium",
    details: Optional[dict] = None,
) -> StuckItem:
    """Hand a task to a human after the worker gave up on it."""
    if priority not in ("low", "medium", "high"):
        raise ValueError(f"Unknown priority: {priority}")

    queue = state.read_stuck_queue()
    item = StuckItem(
        id=generate_queue_id(STUCK_PREFIX, queue.all_ids()),
        task_id=task_id,
        type=type,
        summary=summary,
        created=now_iso(),
        priority=priority,
        details=details,
        attempts=[StuckAttempt(**a) for a in attempts],
        suggested_options=[StuckOption(**o) for o in suggested_options],
    )
    queue.stuck.append(item)
    state.write_stuck_queue(queue)
    logger.info(f"Stuck {item.id} on {task_id}: {summary}")
    return item


def list_stuck(state: StateManager) -> list[StuckItem]:
    return list(state.read_stuck_queue().stuck)


def resolve_stuck(
    state: StateManager,
    stuck_id: str,
    resolution: str,
    resolved_by: str = "human",
) -> ResolvedStuck:
    """Move a stuck item to the resolved archive."""
    if resolved_by not in ("human", "system"):
        raise ValueError(f"Unknown resolver: {resolved_by}")

    queue = state.read_stuck_queue()
    item = next((s for s in queue.stuck if s.id == stuck_id), None)
    if item is None:
        raise NotFoundError("Stuck item", stuck_id)

    record = ResolvedStuck(
        id=item.id,
        resolution=resolution,
        resolved=now_iso(),
        resolved_by=resolved_by,
    )
    queue.stuck = [s for s in queue.stuck if s is not item]
    queue.resolved.append(record)
    state.write_stuck_queue(queue)
    logger.info(f"Stuck {stuck_id} resolved by {resolved_by}")
    return record
