"""
Typed access to the roadmap store.

Knows the key layout:

  project.json
  config.yaml
  .lock
  feedback_queue.json
  stuck_queue.json
  milestones/index.json
  epics/E1-auth/{epic.json,prd.md,architecture.md,stories.json}
  validation/{coverage,links,issues}.json

Every structured document is schema-checked on read (by the store) and
before write (here). Nothing in this module holds the lock; callers that
mutate run under roadmap.lib.locking.exclusive.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from roadmap.lib.config import RoadmapConfig
from roadmap.lib.constants import (
    ARCHITECTURE_FILE,
    CONFIG_KEY,
    EPIC_FILE,
    EPICS_DIR,
    FEEDBACK_QUEUE_KEY,
    MILESTONE_INDEX_KEY,
    MILESTONES_DIR,
    PRD_FILE,
    PROJECT_KEY,
    STORIES_FILE,
    STUCK_QUEUE_KEY,
    VALIDATION_DIR,
)
from roadmap.lib.ids import slugify, sort_key
from roadmap.lib.store import Store
from roadmap.lib.timeutil import now_iso
from roadmap.lib.validate import validate_before_write
from roadmap.pm.models import (
    Epic,
    FeedbackQueue,
    Milestone,
    MilestoneIndex,
    Project,
    StoriesFile,
    Story,
    StuckQueue,
)

logger = logging.getLogger(__name__)


class NotFoundError(Exception):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class NotInitializedError(Exception):
    """The store holds no project."""

    def __init__(self, where: str = ""):
        super().__init__(
            "No roadmap project found" + (f" in {where}" if where else "")
            + ". Run 'roadmap init' first."
        )


@dataclass
class Snapshot:
    """Everything the integrity checks look at, loaded in one pass.

    stories is keyed by the epic whose directory holds the collection.
    stray_collections are stories.json documents found in a directory
    with no epic.json.
    """
    project: Optional[Project] = None
    milestones: list[Milestone] = field(default_factory=list)
    epics: list[Epic] = field(default_factory=list)
    prd_text: dict[str, str] = field(default_factory=dict)
    stories: dict[str, StoriesFile] = field(default_factory=dict)
    stray_collections: list[StoriesFile] = field(default_factory=list)

    def epic(self, epic_id: str) -> Optional[Epic]:
        for epic in self.epics:
            if epic.id == epic_id:
                return epic
        return None

    def stories_for(self, epic_id: str) -> list[Story]:
        collection = self.stories.get(epic_id)
        return list(collection.stories) if collection else []

    def all_stories(self) -> Iterator[tuple[str, Story]]:
        """(owning epic id, story) in epic order, then stored order."""
        for epic in self.epics:
            for story in self.stories_for(epic.id):
                yield epic.id, story


class StateManager:
    """Read and write roadmap documents through a Store."""

    def __init__(self, store: Store):
        self.store = store

    # -- project ---------------------------------------------------------

    def is_initialized(self) -> bool:
        return self.store.is_initialized()

    def require_initialized(self) -> None:
        if not self.store.is_initialized():
            raise NotInitializedError(repr(self.store))

    def initialize(self, name: str, description: Optional[str] = None) -> Project:
        """Create (or re-create) the project and its empty documents.

        Re-initializing replaces project.json, the config and the empty
        queues/index. Existing epic directories are left alone.
        """
        now = now_iso()
        project = Project(
            id=slugify(name, max_len=40) or "project",
            name=name,
            description=description,
            created=now,
            updated=now,
        )

        for key in (MILESTONES_DIR, EPICS_DIR, VALIDATION_DIR):
            self.store.ensure_directory(key)

        self.write_project(project)
        self.write_config(RoadmapConfig(project_name=name))
        self.write_milestone_index(MilestoneIndex())
        self.write_feedback_queue(FeedbackQueue())
        self.write_stuck_queue(StuckQueue())

        logger.info(f"Initialized project {project.id}")
        return project

    def read_project(self) -> Project:
        data = self.store.read_structured(PROJECT_KEY, "project")
        if data is None:
            raise NotInitializedError(repr(self.store))
        return Project.from_dict(data)

    def write_project(self, project: Project) -> None:
        self._write(PROJECT_KEY, project.to_dict(), "project")

    def write_config(self, config: RoadmapConfig) -> None:
        self._write(CONFIG_KEY, config.to_dict(), "config")

    # -- milestones ------------------------------------------------------

    def read_milestone_index(self) -> MilestoneIndex:
        data = self.store.read_structured(MILESTONE_INDEX_KEY, "milestone_index")
        if data is None:
            return MilestoneIndex()
        return MilestoneIndex.from_dict(data)

    def write_milestone_index(self, index: MilestoneIndex) -> None:
        self._write(MILESTONE_INDEX_KEY, index.to_dict(), "milestone_index")

    def require_milestone(self, milestone_id: str) -> Milestone:
        milestone = self.read_milestone_index().get(milestone_id)
        if milestone is None:
            raise NotFoundError("Milestone", milestone_id)
        return milestone

    # -- epics -----------------------------------------------------------

    def epic_dir(self, epic_id: str) -> Optional[str]:
        """Directory name for an epic code (E1 -> "E1-auth"), or None."""
        for name in self.store.list_directories(EPICS_DIR):
            if name.startswith(f"{epic_id}-"):
                return name
        return None

    def _epic_key(self, epic: Epic, filename: str) -> str:
        return f"{EPICS_DIR}/{epic.dir_name}/{filename}"

    def find_epic(self, epic_id: str) -> Optional[Epic]:
        dir_name = self.epic_dir(epic_id)
        if dir_name is None:
            return None
        data = self.store.read_structured(f"{EPICS_DIR}/{dir_name}/{EPIC_FILE}", "epic")
        if data is None:
            return None
        return Epic.from_dict(data)

    def require_epic(self, epic_id: str) -> Epic:
        epic = self.find_epic(epic_id)
        if epic is None:
            raise NotFoundError("Epic", epic_id)
        return epic

    def list_epics(self) -> list[Epic]:
        """All epics, in numeric code order."""
        epics = []
        for name in self.store.list_directories(EPICS_DIR):
            data = self.store.read_structured(f"{EPICS_DIR}/{name}/{EPIC_FILE}", "epic")
            if data is None:
                logger.debug(f"Epic directory without {EPIC_FILE}: {name}")
                continue
            epics.append(Epic.from_dict(data))
        return sorted(epics, key=lambda e: sort_key(e.id))

    def write_epic(self, epic: Epic) -> None:
        self.store.ensure_directory(f"{EPICS_DIR}/{epic.dir_name}")
        self._write(self._epic_key(epic, EPIC_FILE), epic.to_dict(), "epic")

    def read_prd(self, epic: Epic) -> Optional[str]:
        return self.store.read_text(self._epic_key(epic, PRD_FILE))

    def write_prd(self, epic: Epic, content: str) -> None:
        self.store.write_text(self._epic_key(epic, PRD_FILE), content)

    def read_architecture(self, epic: Epic) -> Optional[str]:
        return self.store.read_text(self._epic_key(epic, ARCHITECTURE_FILE))

    def write_architecture(self, epic: Epic, content: str) -> None:
        self.store.write_text(self._epic_key(epic, ARCHITECTURE_FILE), content)

    # -- stories ---------------------------------------------------------

    def read_stories(self, epic: Epic) -> Optional[StoriesFile]:
        data = self.store.read_structured(self._epic_key(epic, STORIES_FILE), "stories")
        if data is None:
            return None
        return StoriesFile.from_dict(data)

    def write_stories(self, epic: Epic, stories: StoriesFile) -> None:
        self._write(self._epic_key(epic, STORIES_FILE), stories.to_dict(), "stories")

    def find_story(self, story_id: str) -> tuple[Epic, StoriesFile, Story]:
        """Locate a story by code.

        Raises:
            NotFoundError: If the epic or the story does not exist
        """
        epic_id = story_id.split(".", 1)[0]
        epic = self.find_epic(epic_id)
        collection = self.read_stories(epic) if epic else None
        story = collection.get(story_id) if collection else None
        if story is None:
            raise NotFoundError("Story", story_id)
        return epic, collection, story

    # -- queues ----------------------------------------------------------

    def read_feedback_queue(self) -> FeedbackQueue:
        data = self.store.read_structured(FEEDBACK_QUEUE_KEY, "feedback_queue")
        return FeedbackQueue.from_dict(data) if data else FeedbackQueue()

    def write_feedback_queue(self, queue: FeedbackQueue) -> None:
        self._write(FEEDBACK_QUEUE_KEY, queue.to_dict(), "feedback_queue")

    def read_stuck_queue(self) -> StuckQueue:
        data = self.store.read_structured(STUCK_QUEUE_KEY, "stuck_queue")
        return StuckQueue.from_dict(data) if data else StuckQueue()

    def write_stuck_queue(self, queue: StuckQueue) -> None:
        self._write(STUCK_QUEUE_KEY, queue.to_dict(), "stuck_queue")

    # -- validation results ---------------------------------------------

    def write_validation(self, key: str, data: dict, schema_name: str) -> None:
        self._write(key, data, schema_name)

    def _write(self, key: str, data: dict, schema_name: str) -> None:
        validate_before_write(data, schema_name, key)
        self.store.write_structured(key, data)

    # -- snapshot --------------------------------------------------------

    def load_snapshot(self) -> Snapshot:
        """Load every document the integrity checks need.

        Raises:
            NotInitializedError: If there is no project
            ValidationError: If any document fails its schema
        """
        project = self.read_project()
        snapshot = Snapshot(
            project=project,
            milestones=list(self.read_milestone_index().milestones),
        )

        for name in self.store.list_directories(EPICS_DIR):
            base = f"{EPICS_DIR}/{name}"
            epic_data = self.store.read_structured(f"{base}/{EPIC_FILE}", "epic")
            stories_data = self.store.read_structured(f"{base}/{STORIES_FILE}", "stories")
            collection = StoriesFile.from_dict(stories_data) if stories_data else None

            if epic_data is None:
                if collection is not None:
                    snapshot.stray_collections.append(collection)
                else:
                    logger.debug(f"Epic directory without {EPIC_FILE}: {name}")
                continue

            epic = Epic.from_dict(epic_data)
            snapshot.epics.append(epic)
            snapshot.prd_text[epic.id] = self.store.read_text(f"{base}/{PRD_FILE}") or ""
            if collection is not None:
                snapshot.stories[epic.id] = collection

        snapshot.epics.sort(key=lambda e: sort_key(e.id))
        return snapshot
