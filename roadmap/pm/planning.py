"""
Planning operations: milestones, epics, PRD/architecture artifacts and
story collections.

Callers hold the project lock (roadmap.lib.locking.exclusive) around these;
each function reads what it needs, writes it back, and refreshes the
project stats when child counts change.
"""

import logging
from typing import Iterable, Optional, Union

from roadmap.integrity.coverage import calculate_epic_coverage
from roadmap.integrity.requirements import count_requirements, extract_requirements
from roadmap.lib.constants import ARTIFACT_STATUSES, EPICS_DIR, STORY_TYPES
from roadmap.lib.ids import next_code, slugify
from roadmap.lib.timeutil import now_iso
from roadmap.pm.models import Epic, Milestone, Project, StoriesFile, Story
from roadmap.pm.state import NotFoundError, StateManager

logger = logging.getLogger(__name__)

ARTIFACTS = ("prd", "architecture", "stories")


def refresh_project_stats(state: StateManager) -> Project:
    """Recount milestones, epics and stories into project.json."""
    snapshot = state.load_snapshot()
    project = snapshot.project
    stories = [story for _, story in snapshot.all_stories()]

    project.stats.milestones = len(snapshot.milestones)
    project.stats.epics = len(snapshot.epics)
    project.stats.stories = len(stories)
    project.stats.completed_stories = sum(1 for s in stories if s.status == "done")
    project.updated = now_iso()
    state.write_project(project)
    return project


# ---------------------------------------------------------------------------
# Milestones and epics
# ---------------------------------------------------------------------------

def add_milestone(
    state: StateManager,
    name: str,
    description: str = "",
    order: Optional[int] = None,
) -> Milestone:
    """Append a milestone. Order defaults to after the last one."""
    index = state.read_milestone_index()
    existing = [m.id for m in index.milestones]
    now = now_iso()

    if order is None:
        order = max((m.order for m in index.milestones), default=0) + 1

    milestone = Milestone(
        id=next_code("M", existing),
        slug=slugify(name),
        name=name,
        description=description,
        order=order,
        created=now,
        updated=now,
    )
    index.milestones.append(milestone)
    state.write_milestone_index(index)
    logger.info(f"Added milestone {milestone.id}: {name}")

    refresh_project_stats(state)
    return milestone


def add_epic(
    state: StateManager,
    milestone_id: str,
    name: str,
    description: str = "",
    dependencies: Optional[Iterable[str]] = None,
) -> Epic:
    """Create an epic under a milestone.

    Raises:
        NotFoundError: If the milestone or a dependency epic does not exist
    """
    index = state.read_milestone_index()
    milestone = index.get(milestone_id)
    if milestone is None:
        raise NotFoundError("Milestone", milestone_id)

    dependencies = list(dependencies or [])
    for dep in dependencies:
        if state.find_epic(dep) is None:
            raise NotFoundError("Epic", dep)

    # Number from directory names so a broken epic.json never frees its code
    existing = [d.split("-", 1)[0] for d in state.store.list_directories(EPICS_DIR)]
    now = now_iso()
    epic = Epic(
        id=next_code("E", existing),
        slug=slugify(name) or "epic",
        name=name,
        description=description,
        milestone=milestone_id,
        created=now,
        updated=now,
        dependencies=dependencies,
    )
    state.write_epic(epic)

    milestone.epics.append(epic.id)
    milestone.updated = now
    state.write_milestone_index(index)
    logger.info(f"Added epic {epic.id} to {milestone_id}: {name}")

    refresh_project_stats(state)
    return epic


def set_epic_deferred(state: StateManager, epic_id: str, deferred: bool) -> Epic:
    epic = state.require_epic(epic_id)
    epic.deferred = deferred
    epic.updated = now_iso()
    state.write_epic(epic)
    logger.info(f"Epic {epic_id} {'deferred' if deferred else 'resumed'}")
    return epic


def defer_epic(state: StateManager, epic_id: str) -> Epic:
    return set_epic_deferred(state, epic_id, True)


def resume_epic(state: StateManager, epic_id: str) -> Epic:
    return set_epic_deferred(state, epic_id, False)


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------

def set_artifact_status(state: StateManager, epic_id: str, artifact: str, status: str) -> Epic:
    """Set an artifact's status without touching its content."""
    if artifact not in ARTIFACTS:
        raise ValueError(f"Unknown artifact: {artifact} (expected one of {', '.join(ARTIFACTS)})")
    if status not in ARTIFACT_STATUSES:
        raise ValueError(f"Unknown artifact status: {status}")

    epic = state.require_epic(epic_id)
    getattr(epic.artifacts, artifact).status = status
    epic.updated = now_iso()
    state.write_epic(epic)
    return epic


def save_prd(state: StateManager, epic_id: str, content: str, status: str = "complete") -> Epic:
    """Write prd.md and bump the PRD artifact version."""
    if status not in ARTIFACT_STATUSES:
        raise ValueError(f"Unknown artifact status: {status}")

    epic = state.require_epic(epic_id)
    state.write_prd(epic, content)

    now = now_iso()
    prd = epic.artifacts.prd
    prd.status = status
    prd.version += 1
    prd.last_updated = now
    epic.stats.requirements = count_requirements(content)
    epic.updated = now
    state.write_epic(epic)
    logger.info(f"Saved PRD for {epic_id} (v{prd.version}, {epic.stats.requirements} requirements)")

    # Requirement set may have changed; recompute the stored coverage map
    collection = state.read_stories(epic)
    if collection is not None:
        write_collection(state, epic, collection)
    return epic


def save_architecture(state: StateManager, epic_id: str, content: str,
                      status: str = "complete") -> Epic:
    """Write architecture.md and bump the architecture artifact version."""
    if status not in ARTIFACT_STATUSES:
        raise ValueError(f"Unknown artifact status: {status}")

    epic = state.require_epic(epic_id)
    state.write_architecture(epic, content)

    now = now_iso()
    arch = epic.artifacts.architecture
    arch.status = status
    arch.version += 1
    arch.last_updated = now
    epic.updated = now
    state.write_epic(epic)
    logger.info(f"Saved architecture for {epic_id} (v{arch.version})")
    return epic


# ---------------------------------------------------------------------------
# Stories
# ---------------------------------------------------------------------------

def write_collection(state: StateManager, epic: Epic, collection: StoriesFile) -> StoriesFile:
    """Recompute derived fields, then write stories.json and epic.json."""
    reqs = extract_requirements(state.read_prd(epic), epic.id)
    cov = calculate_epic_coverage(epic.id, reqs, collection.stories)

    collection.coverage = {req_id: list(ids) for req_id, ids in cov.requirements.items()}
    collection.validation.coverage_complete = cov.complete

    epic.artifacts.stories.count = len(collection.stories)
    epic.stats.stories = len(collection.stories)
    epic.stats.requirements = cov.total
    epic.stats.coverage = cov.percent
    epic.updated = now_iso()

    state.write_stories(epic, collection)
    state.write_epic(epic)
    return collection


def _check_story_type(story_type: str) -> None:
    if story_type not in STORY_TYPES:
        raise ValueError(f"Unknown story type: {story_type} (expected one of {', '.join(STORY_TYPES)})")


def add_story(
    state: StateManager,
    epic_id: str,
    title: str,
    description: str = "",
    type: str = "feature",
    requirements: Iterable[str] = (),
    acceptance_criteria: Iterable[str] = (),
    dependencies: Iterable[str] = (),
    estimated_points: Optional[float] = None,
) -> Story:
    """Append one story to an epic's collection.

    Requirement and dependency references are stored as given; the
    validator reports the ones that do not resolve.
    """
    _check_story_type(type)
    epic = state.require_epic(epic_id)
    collection = state.read_stories(epic) or StoriesFile(epic_id=epic.id)

    story = Story(
        id=next_code(f"{epic.id}.S", [s.id for s in collection.stories]),
        title=title,
        description=description,
        type=type,
        requirements=list(requirements),
        acceptance_criteria=list(acceptance_criteria),
        dependencies=list(dependencies),
        estimated_points=estimated_points,
    )
    collection.stories.append(story)

    if epic.artifacts.stories.status == "pending":
        epic.artifacts.stories.status = "drafting"
    write_collection(state, epic, collection)
    logger.info(f"[STORY] Added {story.id}: {title}")

    refresh_project_stats(state)
    return story


def save_stories(
    state: StateManager,
    epic_id: str,
    stories: Iterable[Union[Story, dict]],
    status: str = "complete",
) -> StoriesFile:
    """Replace an epic's story collection.

    Entries without an id are numbered after the highest code in the batch.
    """
    if status not in ARTIFACT_STATUSES:
        raise ValueError(f"Unknown artifact status: {status}")
    epic = state.require_epic(epic_id)

    items = [s.to_dict() if isinstance(s, Story) else dict(s) for s in stories]
    taken = [item["id"] for item in items if item.get("id")]
    parsed: list[Story] = []
    for item in items:
        if not item.get("id"):
            item["id"] = next_code(f"{epic.id}.S", taken)
            taken.append(item["id"])
        story = Story.from_dict(item)
        _check_story_type(story.type)
        parsed.append(story)

    collection = state.read_stories(epic) or StoriesFile(epic_id=epic.id)
    collection.epic_id = epic.id
    collection.stories = parsed
    epic.artifacts.stories.status = status
    write_collection(state, epic, collection)
    logger.info(f"[STORY] Saved {len(parsed)} stories for {epic_id}")

    refresh_project_stats(state)
    return collection


def update_story(state: StateManager, story_id: str, updates: dict) -> Story:
    """Apply field updates to a story (not its status; see lifecycle)."""
    if "id" in updates or "status" in updates:
        raise ValueError("id and status cannot be changed with update_story")

    epic, collection, story = state.find_story(story_id)
    merged = story.to_dict()
    merged.update(updates)
    updated = Story.from_dict(merged)
    _check_story_type(updated.type)

    collection.stories = [updated if s is story else s for s in collection.stories]
    write_collection(state, epic, collection)
    return updated
