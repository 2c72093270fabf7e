"""Story status state machine using the transitions library.

Stories move through:

    todo -> assigned -> in_progress -> review -> done
                  \\         |           /
                   +---- blocked <----+
    (any open status) -> deferred
    (blocked, deferred, review, done, ...) -> todo   via reopen

Usage:
    from roadmap.pm.lifecycle import mark_story

    mark_story(state, "E1.S2", "in_progress", assignee="worker-1")
    mark_story(state, "E1.S2", "blocked", reason="waiting on API keys")
"""

import logging
from typing import Callable, Optional

from transitions import Machine, MachineError

from roadmap.lib.constants import STORY_STATUSES
from roadmap.pm.models import Story
from roadmap.pm.planning import refresh_project_stats, write_collection
from roadmap.pm.state import StateManager

logger = logging.getLogger(__name__)


STATES = list(STORY_STATUSES)

_OPEN = ["todo", "assigned", "in_progress", "review", "blocked", "deferred"]

# Transitions defined as (trigger, source, dest)
# Each trigger becomes a method on the FSM
TRANSITIONS = [
    {"trigger": "assign", "source": ["todo", "blocked"], "dest": "assigned"},
    {"trigger": "start", "source": ["todo", "assigned", "blocked", "review"], "dest": "in_progress"},
    {"trigger": "submit", "source": ["in_progress", "assigned"], "dest": "review"},
    {"trigger": "complete", "source": _OPEN, "dest": "done"},
    {"trigger": "block", "source": ["todo", "assigned", "in_progress", "review"], "dest": "blocked"},
    {"trigger": "defer", "source": _OPEN, "dest": "deferred"},
    {"trigger": "reopen", "source": ["assigned", "in_progress", "review", "done", "blocked", "deferred"],
     "dest": "todo"},
]


# Pre-computed lookup: (source, dest) -> trigger name
def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        for source in t["source"]:
            lookup.setdefault((source, t["dest"]), t["trigger"])
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class InvalidTransition(Exception):
    """Story status change the lifecycle does not allow."""

    def __init__(self, story_id: str, from_status: str, to_status: str):
        self.story_id = story_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot move {story_id} from {from_status} to {to_status}")


class StoryLifecycle:
    """State machine for one story's status.

    Mutates the Story it wraps: status always, assignee and blocked_reason
    where the transition implies them.
    """

    def __init__(self, story: Story, on_transition: Callable[[str, str, str], None] | None = None):
        self.story = story
        self.on_transition = on_transition

        initial = story.status
        if initial not in STATES:
            logger.warning(f"[STORY] {story.id}: Unknown status '{initial}', treating as 'todo'")
            initial = "todo"

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.story.status = to_state
        if to_state != "blocked":
            self.story.blocked_reason = None
        if to_state == "todo":
            self.story.assignee = None

        logger.info(f"[STORY] {self.story.id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        return self.machine.get_triggers(self.state)

    def move_to(self, status: str, force: bool = False) -> bool:
        """Move to a status by name.

        Returns False when the story is already there. force sets the status
        without a defined transition.

        Raises:
            InvalidTransition: If no transition leads there and force is False
        """
        if status not in STATES:
            raise ValueError(f"Unknown story status: {status}")
        if status == self.state:
            return False

        trigger = TRIGGER_FOR.get((self.state, status))
        if trigger is None:
            if not force:
                raise InvalidTransition(self.story.id, self.state, status)
            logger.warning(f"[STORY] {self.story.id}: forcing {self.state} -> {status}")
            previous = self.state
            self.machine.set_state(status)
            self.story.status = status
            if status != "blocked":
                self.story.blocked_reason = None
            if self.on_transition:
                self.on_transition(previous, status, "force")
            return True

        try:
            self.trigger(trigger)
        except MachineError as e:
            raise InvalidTransition(self.story.id, self.state, status) from e
        return True


def mark_story(
    state: StateManager,
    story_id: str,
    status: str,
    reason: Optional[str] = None,
    assignee: Optional[str] = None,
    force: bool = False,
) -> Story:
    """Change a story's status and persist it.

    Args:
        state: StateManager for the project
        story_id: Story code (E1.S2)
        status: Target status
        reason: Why the story is blocked (used when status is blocked)
        assignee: Who picks it up (assigned / in_progress)
        force: Allow a change the lifecycle has no transition for

    Raises:
        NotFoundError: If the story does not exist
        InvalidTransition: If the change is not allowed
    """
    epic, collection, story = state.find_story(story_id)
    lifecycle = StoryLifecycle(story)
    changed = lifecycle.move_to(status, force=force)

    if status == "blocked" and reason:
        story.blocked_reason = reason
        changed = True
    if assignee and status in ("assigned", "in_progress"):
        story.assignee = assignee
        changed = True

    if not changed:
        logger.debug(f"[STORY] {story_id} already {status}")
        return story

    write_collection(state, epic, collection)
    refresh_project_stats(state)
    return story
