"""
Project configuration.

Loads config.yaml from the store. If the document is missing, returns
defaults; if it cannot be read or fails its schema, logs a warning and
returns defaults. Sections that are present override defaults key by key.

  lock:
    lease_minutes: 10
  grind:
    max_attempts: 5
    same_issue_threshold: 2
    timeout_minutes: 10
  checkpoints: [after_epic_breakdown, ...]
  stack: {language: python}
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from roadmap.lib.constants import CONFIG_KEY, DEFAULT_LEASE_MINUTES
from roadmap.lib.store import StorageError, Store
from roadmap.lib.validate import ValidationError

logger = logging.getLogger(__name__)


DEFAULT_CHECKPOINTS = [
    "after_epic_breakdown",
    "after_prd_generation",
    "after_architecture",
    "before_export",
]


@dataclass
class GrindConfig:
    """Retry limits for agent work on a single story."""
    max_attempts: int = 5
    same_issue_threshold: int = 2   # Same failure this many times -> stuck queue
    timeout_minutes: float = 10


@dataclass
class RoadmapConfig:
    """Configuration from config.yaml."""
    project_name: Optional[str] = None
    team_size: Optional[int] = None
    lease_minutes: float = DEFAULT_LEASE_MINUTES
    grind: GrindConfig = field(default_factory=GrindConfig)
    checkpoints: list[str] = field(default_factory=lambda: list(DEFAULT_CHECKPOINTS))
    stack: dict[str, str] = field(default_factory=dict)

    @property
    def lease(self) -> timedelta:
        return timedelta(minutes=self.lease_minutes)

    def to_dict(self) -> dict:
        """Document form, as written to config.yaml."""
        data = {
            "lock": {"lease_minutes": self.lease_minutes},
            "grind": {
                "max_attempts": self.grind.max_attempts,
                "same_issue_threshold": self.grind.same_issue_threshold,
                "timeout_minutes": self.grind.timeout_minutes,
            },
            "checkpoints": list(self.checkpoints),
        }
        project = {}
        if self.project_name is not None:
            project["name"] = self.project_name
        if self.team_size is not None:
            project["team_size"] = self.team_size
        if project:
            data["project"] = project
        if self.stack:
            data["stack"] = dict(self.stack)
        return data


def config_from_dict(data: Optional[dict]) -> RoadmapConfig:
    """Build a RoadmapConfig from a parsed document, filling in defaults."""
    config = RoadmapConfig()
    if not data:
        return config

    project = data.get("project") or {}
    config.project_name = project.get("name")
    config.team_size = project.get("team_size")

    lock = data.get("lock") or {}
    config.lease_minutes = lock.get("lease_minutes", DEFAULT_LEASE_MINUTES)

    grind = data.get("grind") or {}
    defaults = GrindConfig()
    config.grind = GrindConfig(
        max_attempts=grind.get("max_attempts", defaults.max_attempts),
        same_issue_threshold=grind.get("same_issue_threshold", defaults.same_issue_threshold),
        timeout_minutes=grind.get("timeout_minutes", defaults.timeout_minutes),
    )

    if "checkpoints" in data:
        config.checkpoints = list(data["checkpoints"])
    config.stack = dict(data.get("stack") or {})
    return config


def load_config(store: Store) -> RoadmapConfig:
    """Load config.yaml from the store and return RoadmapConfig.

    Never raises for a bad config document; falls back to defaults.
    """
    try:
        data = store.read_structured(CONFIG_KEY, "config")
    except (ValidationError, StorageError) as e:
        logger.warning(f"Failed to load {CONFIG_KEY}, using defaults: {e}")
        return RoadmapConfig()

    return config_from_dict(data)
