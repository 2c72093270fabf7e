"""Shared constants for roadmap."""

import re

# Entity codes
MILESTONE_ID_PATTERN = re.compile(r'^M(\d+)$')
EPIC_ID_PATTERN = re.compile(r'^E(\d+)$')
STORY_ID_PATTERN = re.compile(r'^(E\d+)\.S(\d+)$')
REQUIREMENT_ID_PATTERN = re.compile(r'^(E\d+)\.R(\d+)$')

# Store root for the filesystem adapter, relative to the project directory
STATE_DIR = ".roadmap"

# Store keys
PROJECT_KEY = "project.json"
CONFIG_KEY = "config.yaml"
LOCK_KEY = ".lock"
FEEDBACK_QUEUE_KEY = "feedback_queue.json"
STUCK_QUEUE_KEY = "stuck_queue.json"
MILESTONES_DIR = "milestones"
MILESTONE_INDEX_KEY = "milestones/index.json"
EPICS_DIR = "epics"
VALIDATION_DIR = "validation"
COVERAGE_KEY = "validation/coverage.json"
LINKS_KEY = "validation/links.json"
ISSUES_KEY = "validation/issues.json"

# Files inside an epic directory
EPIC_FILE = "epic.json"
PRD_FILE = "prd.md"
ARCHITECTURE_FILE = "architecture.md"
STORIES_FILE = "stories.json"

# Lock lease, overridable through config.yaml (lock.lease_minutes)
DEFAULT_LEASE_MINUTES = 10
LOCK_HOLDERS = ("worker", "user", "system")

ARTIFACT_STATUSES = ("pending", "drafting", "complete", "needs_review", "needs_update")
STORY_STATUSES = ("todo", "assigned", "in_progress", "review", "done", "blocked", "deferred")
STORY_TYPES = ("feature", "bug", "chore", "spike")
FEEDBACK_TYPES = ("blocker", "gap", "scope", "conflict", "question")
