"""Tests for roadmap.lib.store module."""

import pytest

from roadmap.lib.store import FileSystemStore, MemoryStore, StorageError
from roadmap.lib.validate import ValidationError


@pytest.fixture(params=["memory", "filesystem"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return FileSystemStore(tmp_path)


class TestStoreAdapters:
    """Behaviour shared by both adapters."""

    def test_absent_key_reads_none(self, store):
        assert store.read_structured("project.json") is None
        assert store.read_text("epics/E1-auth/prd.md") is None
        assert not store.exists("project.json")

    def test_structured_round_trip(self, store):
        store.write_structured("milestones/index.json", {"milestones": []})
        assert store.read_structured("milestones/index.json", "milestone_index") == {"milestones": []}

    def test_yaml_keys_stored_as_yaml(self, store):
        store.write_structured("config.yaml", {"lease_minutes": 5})
        assert store.read_text("config.yaml").strip() == "lease_minutes: 5"
        assert store.read_structured("config.yaml") == {"lease_minutes": 5}

    def test_schema_failure_on_read(self, store):
        store.write_structured("milestones/index.json", {"milestones": "nope"})
        with pytest.raises(ValidationError, match="milestone_index"):
            store.read_structured("milestones/index.json", "milestone_index")

    def test_unparsable_document(self, store):
        store.write_text("project.json", "{not json")
        with pytest.raises(ValidationError, match="Unparsable"):
            store.read_structured("project.json")

    def test_listing(self, store):
        store.write_text("epics/E2-search/epic.json", "{}")
        store.write_text("epics/E1-auth/epic.json", "{}")
        store.write_text("epics/E1-auth/prd.md", "# PRD")
        store.ensure_directory("epics/E3-empty")

        assert store.list_directories("epics") == ["E1-auth", "E2-search", "E3-empty"]
        assert store.list("epics/E1-auth") == ["epic.json", "prd.md"]
        assert store.list("missing") == []

    def test_delete(self, store):
        store.write_text("feedback_queue.json", "{}")
        store.delete("feedback_queue.json")
        store.delete("feedback_queue.json")
        assert not store.exists("feedback_queue.json")

    @pytest.mark.parametrize("key", ["../outside.json", "/etc/passwd", "epics/../../x"])
    def test_escaping_keys_rejected(self, store, key):
        with pytest.raises(StorageError):
            store.read_text(key)

    def test_is_initialized(self, store):
        assert not store.is_initialized()
        store.write_text("project.json", "{}")
        assert store.is_initialized()


class TestFileSystemStore:
    def test_files_live_under_state_dir(self, tmp_path):
        store = FileSystemStore(tmp_path)
        store.write_text("epics/E1-auth/prd.md", "### R1: Login\n")
        assert (tmp_path / ".roadmap" / "epics" / "E1-auth" / "prd.md").read_text() == "### R1: Login\n"

    def test_create_exclusive(self, tmp_path):
        store = FileSystemStore(tmp_path)
        assert store.create_exclusive(".lock", {"holder": "worker"}) is True
        assert store.create_exclusive(".lock", {"holder": "user"}) is False
        assert store.read_structured(".lock") == {"holder": "worker"}

    def test_failed_exclusive_create_leaves_nothing(self, tmp_path, monkeypatch):
        """A write that dies before the document is complete never claims the key."""
        store = FileSystemStore(tmp_path)

        def broken_fsync(fd):
            raise OSError("disk full")

        monkeypatch.setattr("roadmap.lib.store.os.fsync", broken_fsync)
        with pytest.raises(StorageError, match="disk full"):
            store.create_exclusive(".lock", {"holder": "worker"})
        assert not (tmp_path / ".roadmap" / ".lock").exists()
        assert list((tmp_path / ".roadmap").iterdir()) == []

        monkeypatch.undo()
        assert store.create_exclusive(".lock", {"holder": "worker"}) is True


class TestMemoryStore:
    def test_seeded_files(self):
        store = MemoryStore({"epics/E1-auth/prd.md": "### R1: Login\n"})
        assert store.exists("epics/E1-auth")
        assert store.list_directories("epics") == ["E1-auth"]

    def test_no_exclusive_create(self):
        assert not hasattr(MemoryStore(), "create_exclusive")
