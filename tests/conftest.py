"""Shared fixtures for roadmap tests."""

from datetime import datetime, timezone

import pytest

from roadmap.lib.store import FileSystemStore, MemoryStore
from roadmap.pm.models import Epic, Milestone, StoriesFile, Story
from roadmap.pm.state import Snapshot, StateManager

TS = "2026-01-01T00:00:00+00:00"


class FakeClock:
    """Settable clock for lease tests."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def fs_store(tmp_path):
    return FileSystemStore(tmp_path)


@pytest.fixture
def state(memory_store):
    """Initialized project on an in-memory store."""
    manager = StateManager(memory_store)
    manager.initialize("Test Project")
    return manager


@pytest.fixture
def fs_state(fs_store):
    """Initialized project on a filesystem store."""
    manager = StateManager(fs_store)
    manager.initialize("Test Project")
    return manager


@pytest.fixture
def make_epic():
    """Build an Epic with the given artifact statuses."""
    def _make(epic_id="E1", milestone="M1", prd="pending", architecture="pending",
              stories="pending", deferred=False):
        epic = Epic(
            id=epic_id,
            slug=f"epic-{epic_id.lower()}",
            name=f"Epic {epic_id}",
            description="",
            milestone=milestone,
            created=TS,
            updated=TS,
            deferred=deferred,
        )
        epic.artifacts.prd.status = prd
        epic.artifacts.architecture.status = architecture
        epic.artifacts.stories.status = stories
        return epic
    return _make


@pytest.fixture
def make_snapshot(make_epic):
    """Build a Snapshot from compact descriptions.

    epics: list of Epic (default: a single complete E1)
    prds: {epic_id: prd text}
    stories: {epic_id: [Story, ...]}
    milestones: list of Milestone (default: one per referenced milestone id)
    """
    def _make(epics=None, prds=None, stories=None, milestones=None, stray=None):
        if epics is None:
            epics = [make_epic("E1", prd="complete", architecture="complete", stories="complete")]
        if milestones is None:
            by_id: dict[str, list[str]] = {}
            for epic in epics:
                by_id.setdefault(epic.milestone, []).append(epic.id)
            milestones = [
                Milestone(id=m_id, slug=m_id.lower(), name=m_id, description="",
                          order=i, created=TS, updated=TS, epics=epic_ids)
                for i, (m_id, epic_ids) in enumerate(sorted(by_id.items()), start=1)
            ]
        return Snapshot(
            milestones=milestones,
            epics=list(epics),
            prd_text=dict(prds or {}),
            stories={
                epic_id: StoriesFile(epic_id=epic_id, stories=list(items))
                for epic_id, items in (stories or {}).items()
            },
            stray_collections=list(stray or []),
        )
    return _make


def story(story_id, requirements=(), dependencies=(), status="todo", **kwargs):
    """Compact Story constructor for test data."""
    return Story(
        id=story_id,
        title=kwargs.pop("title", f"Story {story_id}"),
        requirements=list(requirements),
        dependencies=list(dependencies),
        status=status,
        **kwargs,
    )


@pytest.fixture
def make_story():
    return story
