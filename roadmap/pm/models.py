"""
Data models for roadmap documents.

One dataclass per stored document (and per nested record). to_dict() is the
document form written to the store; from_dict() accepts what the schema
accepts and ignores keys it does not know about.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Optional


def _known(cls, data: dict) -> dict:
    """Subset of data whose keys are fields of cls."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


class _Document:
    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

@dataclass
class ProjectStats(_Document):
    milestones: int = 0
    epics: int = 0
    stories: int = 0
    completed_stories: int = 0


@dataclass
class Project(_Document):
    """Root document, project.json."""
    id: str
    name: str
    created: str                               # ISO timestamp
    updated: str                               # ISO timestamp
    status: str = "active"                     # active, paused, complete
    description: Optional[str] = None
    current_focus: Optional[str] = None
    stats: ProjectStats = field(default_factory=ProjectStats)

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        data = _known(cls, data)
        data["stats"] = ProjectStats(**_known(ProjectStats, data.get("stats") or {}))
        return cls(**data)


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------

@dataclass
class Milestone(_Document):
    id: str                                    # M1
    slug: str
    name: str
    description: str
    order: int
    created: str
    updated: str
    epics: list[str] = field(default_factory=list)   # Ordered epic codes

    @classmethod
    def from_dict(cls, data: dict) -> "Milestone":
        return cls(**_known(cls, data))


@dataclass
class MilestoneIndex(_Document):
    """milestones/index.json"""
    milestones: list[Milestone] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "MilestoneIndex":
        return cls(milestones=[Milestone.from_dict(m) for m in data.get("milestones", [])])

    def get(self, milestone_id: str) -> Optional[Milestone]:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None


# ---------------------------------------------------------------------------
# Epics
# ---------------------------------------------------------------------------

@dataclass
class ArtifactMeta(_Document):
    """Status of a text artifact (PRD, architecture)."""
    status: str = "pending"                    # pending, drafting, complete, needs_review, needs_update
    version: int = 0
    last_updated: Optional[str] = None


@dataclass
class StoriesArtifact(_Document):
    status: str = "pending"
    count: int = 0


@dataclass
class EpicArtifacts(_Document):
    prd: ArtifactMeta = field(default_factory=ArtifactMeta)
    architecture: ArtifactMeta = field(default_factory=ArtifactMeta)
    stories: StoriesArtifact = field(default_factory=StoriesArtifact)

    @classmethod
    def from_dict(cls, data: dict) -> "EpicArtifacts":
        return cls(
            prd=ArtifactMeta(**_known(ArtifactMeta, data.get("prd") or {})),
            architecture=ArtifactMeta(**_known(ArtifactMeta, data.get("architecture") or {})),
            stories=StoriesArtifact(**_known(StoriesArtifact, data.get("stories") or {})),
        )


@dataclass
class EpicStats(_Document):
    requirements: int = 0
    stories: int = 0
    coverage: int = 0                          # Percent, 0-100


@dataclass
class Epic(_Document):
    """epics/E<n>-<slug>/epic.json"""
    id: str                                    # E1
    slug: str
    name: str
    description: str
    milestone: str                             # M1
    created: str
    updated: str
    deferred: bool = False
    artifacts: EpicArtifacts = field(default_factory=EpicArtifacts)
    dependencies: list[str] = field(default_factory=list)   # Other epic codes
    stats: EpicStats = field(default_factory=EpicStats)

    @property
    def dir_name(self) -> str:
        return f"{self.id}-{self.slug}"

    @classmethod
    def from_dict(cls, data: dict) -> "Epic":
        data = _known(cls, data)
        data["artifacts"] = EpicArtifacts.from_dict(data.get("artifacts") or {})
        data["stats"] = EpicStats(**_known(EpicStats, data.get("stats") or {}))
        return cls(**data)


# ---------------------------------------------------------------------------
# Stories
# ---------------------------------------------------------------------------

@dataclass
class Story(_Document):
    """A unit of work inside an epic. Stored in the epic's stories.json."""
    id: str                                    # E1.S1
    title: str
    description: str = ""
    type: str = "feature"                      # feature, bug, chore, spike
    requirements: list[str] = field(default_factory=list)          # E1.R1, ...
    acceptance_criteria: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)          # Story codes
    estimated_points: Optional[float] = None
    status: str = "todo"
    assignee: Optional[str] = None
    blocked_reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Story":
        return cls(**_known(cls, data))


@dataclass
class StoriesValidation(_Document):
    coverage_complete: bool = False
    all_links_valid: bool = False
    last_validated: Optional[str] = None


@dataclass
class StoriesFile(_Document):
    """epics/E<n>-<slug>/stories.json"""
    epic_id: str
    stories: list[Story] = field(default_factory=list)
    coverage: dict[str, list[str]] = field(default_factory=dict)   # requirement -> story codes
    validation: StoriesValidation = field(default_factory=StoriesValidation)

    @classmethod
    def from_dict(cls, data: dict) -> "StoriesFile":
        return cls(
            epic_id=data["epic_id"],
            stories=[Story.from_dict(s) for s in data.get("stories", [])],
            coverage={k: list(v) for k, v in (data.get("coverage") or {}).items()},
            validation=StoriesValidation(**_known(StoriesValidation, data.get("validation") or {})),
        )

    def get(self, story_id: str) -> Optional[Story]:
        for story in self.stories:
            if story.id == story_id:
                return story
        return None


# ---------------------------------------------------------------------------
# Feedback queue
# ---------------------------------------------------------------------------

@dataclass
class FeedbackSource(_Document):
    type: str                                  # execution, review, user
    story_id: Optional[str] = None
    reported_by: Optional[str] = None


@dataclass
class AffectedRef(_Document):
    type: str                                  # requirement, architecture, story, epic
    id: str


@dataclass
class FeedbackItem(_Document):
    id: str                                    # FB-001
    type: str                                  # blocker, gap, scope, conflict, question
    source: FeedbackSource
    summary: str
    created: str
    status: str = "pending"                    # pending, incorporated, dismissed
    details: Optional[dict] = None
    affects: list[AffectedRef] = field(default_factory=list)
    suggested_actions: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "FeedbackItem":
        data = _known(cls, data)
        data["source"] = FeedbackSource(**_known(FeedbackSource, data["source"]))
        data["affects"] = [AffectedRef(**_known(AffectedRef, a)) for a in data.get("affects", [])]
        return cls(**data)


@dataclass
class IncorporatedFeedback(_Document):
    id: str
    summary: str
    incorporated: str                          # ISO timestamp
    changes_made: list[str] = field(default_factory=list)


@dataclass
class FeedbackQueue(_Document):
    """feedback_queue.json"""
    feedback: list[FeedbackItem] = field(default_factory=list)
    incorporated: list[IncorporatedFeedback] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "FeedbackQueue":
        return cls(
            feedback=[FeedbackItem.from_dict(f) for f in data.get("feedback", [])],
            incorporated=[
                IncorporatedFeedback(**_known(IncorporatedFeedback, i))
                for i in data.get("incorporated", [])
            ],
        )

    def all_ids(self) -> list[str]:
        return [f.id for f in self.feedback] + [i.id for i in self.incorporated]


# ---------------------------------------------------------------------------
# Stuck queue
# ---------------------------------------------------------------------------

@dataclass
class StuckAttempt(_Document):
    number: int
    approach: str
    result: str


@dataclass
class StuckOption(_Document):
    label: str
    description: str


@dataclass
class StuckItem(_Document):
    """A task the worker gave up on and handed to a human."""
    id: str                                    # STK-001
    task_id: str
    type: str
    summary: str
    created: str
    priority: str = "medium"                   # low, medium, high
    details: Optional[dict] = None
    attempts: list[StuckAttempt] = field(default_factory=list)
    suggested_options: list[StuckOption] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "StuckItem":
        data = _known(cls, data)
        data["attempts"] = [StuckAttempt(**_known(StuckAttempt, a)) for a in data.get("attempts", [])]
        data["suggested_options"] = [
            StuckOption(**_known(StuckOption, o)) for o in data.get("suggested_options", [])
        ]
        return cls(**data)


@dataclass
class ResolvedStuck(_Document):
    id: str
    resolution: str
    resolved: str                              # ISO timestamp
    resolved_by: str = "human"                 # human, system


@dataclass
class StuckQueue(_Document):
    """stuck_queue.json"""
    stuck: list[StuckItem] = field(default_factory=list)
    resolved: list[ResolvedStuck] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "StuckQueue":
        return cls(
            stuck=[StuckItem.from_dict(s) for s in data.get("stuck", [])],
            resolved=[ResolvedStuck(**_known(ResolvedStuck, r)) for r in data.get("resolved", [])],
        )

    def all_ids(self) -> list[str]:
        return [s.id for s in self.stuck] + [r.id for r in self.resolved]
