"""
PM (Project Management) module for roadmap.

Typed documents for milestones, epics, stories and the feedback/stuck
queues, and the StateManager that reads and writes them through a Store.
Planning operations live in roadmap.pm.planning, story status changes in
roadmap.pm.lifecycle and queue handling in roadmap.pm.feedback.
"""

from roadmap.pm.models import (
    Epic,
    FeedbackItem,
    FeedbackQueue,
    Milestone,
    MilestoneIndex,
    Project,
    StoriesFile,
    Story,
    StuckItem,
    StuckQueue,
)
from roadmap.pm.state import (
    NotFoundError,
    NotInitializedError,
    Snapshot,
    StateManager,
)

__all__ = [
    "Epic",
    "FeedbackItem",
    "FeedbackQueue",
    "Milestone",
    "MilestoneIndex",
    "Project",
    "StoriesFile",
    "Story",
    "StuckItem",
    "StuckQueue",
    "NotFoundError",
    "NotInitializedError",
    "Snapshot",
    "StateManager",
]
