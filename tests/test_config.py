"""Tests for roadmap.lib.config module."""

import logging
from datetime import timedelta

from roadmap.lib.config import DEFAULT_CHECKPOINTS, RoadmapConfig, config_from_dict, load_config
from roadmap.lib.store import MemoryStore


class TestLoadConfig:
    """Tests for load_config()."""

    def test_returns_defaults_when_file_missing(self):
        """Should return defaults when config.yaml doesn't exist."""
        config = load_config(MemoryStore())
        assert config.lease_minutes == 10
        assert config.lease == timedelta(minutes=10)
        assert config.grind.max_attempts == 5
        assert config.grind.same_issue_threshold == 2
        assert config.checkpoints == DEFAULT_CHECKPOINTS

    def test_loads_overrides(self):
        """Sections present in the file override defaults key by key."""
        store = MemoryStore({"config.yaml": (
            "project:\n"
            "  name: Shop\n"
            "  team_size: 3\n"
            "lock:\n"
            "  lease_minutes: 2.5\n"
            "grind:\n"
            "  max_attempts: 8\n"
            "checkpoints: []\n"
            "stack:\n"
            "  language: python\n"
        )})
        config = load_config(store)
        assert config.project_name == "Shop"
        assert config.team_size == 3
        assert config.lease == timedelta(minutes=2.5)
        assert config.grind.max_attempts == 8
        assert config.grind.same_issue_threshold == 2
        assert config.checkpoints == []
        assert config.stack == {"language": "python"}

    def test_empty_file_is_defaults(self):
        config = load_config(MemoryStore({"config.yaml": ""}))
        assert config == RoadmapConfig()

    def test_handles_invalid_yaml(self, caplog):
        """Should warn and fall back to defaults on unparsable YAML."""
        store = MemoryStore({"config.yaml": "lock: [unclosed\n"})
        with caplog.at_level(logging.WARNING):
            config = load_config(store)
        assert config == RoadmapConfig()
        assert "Failed to load config.yaml" in caplog.text

    def test_handles_schema_violation(self, caplog):
        """A lease of zero minutes is rejected and defaults are used."""
        store = MemoryStore({"config.yaml": "lock:\n  lease_minutes: 0\n"})
        with caplog.at_level(logging.WARNING):
            config = load_config(store)
        assert config.lease_minutes == 10
        assert "using defaults" in caplog.text


class TestConfigDocument:
    def test_to_dict_reloads_to_same_config(self):
        config = config_from_dict({"project": {"name": "Shop"}, "lock": {"lease_minutes": 3}})
        assert config_from_dict(config.to_dict()) == config

    def test_to_dict_omits_unset_sections(self):
        data = RoadmapConfig().to_dict()
        assert "project" not in data
        assert "stack" not in data
        assert data["lock"] == {"lease_minutes": 10}
