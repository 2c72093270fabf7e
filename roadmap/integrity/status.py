"""
Derived status for epics, milestones and the project.

Status is computed from artifacts and stories every time, never stored.
Epic status is a lookup in STATUS_TABLE keyed by the epic's artifact phase
and its story progress; the deferred flag overrides the table.
"""

from collections import Counter
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Mapping

from roadmap.lib.constants import STORY_STATUSES
from roadmap.pm.models import Epic, Milestone, Story

if TYPE_CHECKING:
    from roadmap.pm.state import Snapshot


class EpicStatus(str, Enum):
    DEFERRED = "deferred"
    PLANNED = "planned"
    DRAFTING = "drafting"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class MilestoneStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ArtifactPhase(str, Enum):
    PLANNED = "planned"         # PRD not started
    DRAFTING = "drafting"       # Some artifact not complete
    COMPLETE = "complete"       # PRD, architecture and stories all complete


class StoryProgress(str, Enum):
    NONE = "none"               # No stories (deferred ones are not counted)
    UNSTARTED = "unstarted"     # Every story todo
    ACTIVE = "active"           # Started, not all done
    ALL_DONE = "all_done"


STATUS_TABLE: dict[tuple[ArtifactPhase, StoryProgress], EpicStatus] = {
    (ArtifactPhase.PLANNED, StoryProgress.NONE): EpicStatus.PLANNED,
    (ArtifactPhase.PLANNED, StoryProgress.UNSTARTED): EpicStatus.PLANNED,
    (ArtifactPhase.PLANNED, StoryProgress.ACTIVE): EpicStatus.PLANNED,
    (ArtifactPhase.PLANNED, StoryProgress.ALL_DONE): EpicStatus.PLANNED,
    (ArtifactPhase.DRAFTING, StoryProgress.NONE): EpicStatus.DRAFTING,
    (ArtifactPhase.DRAFTING, StoryProgress.UNSTARTED): EpicStatus.DRAFTING,
    (ArtifactPhase.DRAFTING, StoryProgress.ACTIVE): EpicStatus.DRAFTING,
    (ArtifactPhase.DRAFTING, StoryProgress.ALL_DONE): EpicStatus.DRAFTING,
    (ArtifactPhase.COMPLETE, StoryProgress.NONE): EpicStatus.READY,
    (ArtifactPhase.COMPLETE, StoryProgress.UNSTARTED): EpicStatus.READY,
    (ArtifactPhase.COMPLETE, StoryProgress.ACTIVE): EpicStatus.IN_PROGRESS,
    (ArtifactPhase.COMPLETE, StoryProgress.ALL_DONE): EpicStatus.DONE,
}


def artifact_phase(epic: Epic) -> ArtifactPhase:
    artifacts = epic.artifacts
    if artifacts.prd.status == "pending":
        return ArtifactPhase.PLANNED
    statuses = (artifacts.prd.status, artifacts.architecture.status, artifacts.stories.status)
    if any(s != "complete" for s in statuses):
        return ArtifactPhase.DRAFTING
    return ArtifactPhase.COMPLETE


def story_progress(stories: Iterable[Story]) -> StoryProgress:
    statuses = [s.status for s in stories if s.status != "deferred"]
    if not statuses:
        return StoryProgress.NONE
    if all(s == "done" for s in statuses):
        return StoryProgress.ALL_DONE
    if all(s == "todo" for s in statuses):
        return StoryProgress.UNSTARTED
    return StoryProgress.ACTIVE


def derive_epic_status(epic: Epic, stories: Iterable[Story]) -> EpicStatus:
    if epic.deferred:
        return EpicStatus.DEFERRED
    return STATUS_TABLE[(artifact_phase(epic), story_progress(stories))]


def derive_milestone_status(
    milestone: Milestone,
    epic_statuses: Mapping[str, EpicStatus],
) -> MilestoneStatus:
    """Roll epic statuses up to the milestone.

    Epics the milestone lists but that are missing from epic_statuses are
    skipped; deferred epics do not hold a milestone back.
    """
    statuses = [epic_statuses[e] for e in milestone.epics if e in epic_statuses]
    active = [s for s in statuses if s != EpicStatus.DEFERRED]
    if not active:
        return MilestoneStatus.PLANNED
    if all(s == EpicStatus.DONE for s in active):
        return MilestoneStatus.DONE
    if any(s in (EpicStatus.DRAFTING, EpicStatus.READY, EpicStatus.IN_PROGRESS, EpicStatus.DONE)
           for s in active):
        return MilestoneStatus.IN_PROGRESS
    return MilestoneStatus.PLANNED


class NextStep(str, Enum):
    """Project-level hint, in stage order."""
    DEFINE_MILESTONES = "define_milestones"
    ADD_EPICS = "add_epics"
    WRITE_PRD = "write_prd"
    WRITE_ARCHITECTURE = "write_architecture"
    GENERATE_STORIES = "generate_stories"
    IMPLEMENT_STORIES = "implement_stories"
    COMPLETE = "complete"


_STAGE_ORDER = list(NextStep)


def epic_next_step(epic: Epic) -> NextStep:
    """The artifact stage an epic is waiting on."""
    artifacts = epic.artifacts
    if artifacts.prd.status != "complete":
        return NextStep.WRITE_PRD
    if artifacts.architecture.status != "complete":
        return NextStep.WRITE_ARCHITECTURE
    if artifacts.stories.status != "complete":
        return NextStep.GENERATE_STORIES
    return NextStep.IMPLEMENT_STORIES


def derive_next_step(snapshot: "Snapshot") -> NextStep:
    """What most in-flight epics need next. Ties go to the earlier stage."""
    if not snapshot.milestones:
        return NextStep.DEFINE_MILESTONES
    if not snapshot.epics:
        return NextStep.ADD_EPICS

    votes: Counter = Counter()
    for epic in snapshot.epics:
        status = derive_epic_status(epic, snapshot.stories_for(epic.id))
        if status in (EpicStatus.DEFERRED, EpicStatus.DONE):
            continue
        votes[epic_next_step(epic)] += 1

    if not votes:
        return NextStep.COMPLETE
    return max(votes, key=lambda step: (votes[step], -_STAGE_ORDER.index(step)))


def story_counts(stories: Iterable[Story]) -> dict[str, int]:
    """Histogram of story statuses, every status present (zero if unused)."""
    counts = {status: 0 for status in STORY_STATUSES}
    for story in stories:
        counts[story.status] = counts.get(story.status, 0) + 1
    return counts
