"""
Reference graph validation.

Walks milestone -> epic -> story -> requirement references in a loaded
snapshot and reports what does not resolve. Findings are data: this never
raises on bad references and never repairs anything.

    error    dangling_milestone       epic.milestone does not exist
    error    dangling_milestone_epic  milestone lists an epic that does not exist
    error    dangling_epic            story code/collection points at no epic
    error    broken_requirement       story lists a requirement its PRD lacks
    error    broken_dependency        story depends on a story that does not exist
    warning  dependency_cycle         story dependencies loop (each cycle once)
    warning  cross_epic_dependency    depends on another epic's unfinished story
    warning  duplicate_story          story code declared more than once
    warning  orphaned_requirement     requirement no story covers
    warning  unlinked_story           story lists no requirements
    info     no_requirements          PRD written but declares no requirements
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from roadmap.integrity.coverage import CoverageReport, calculate_coverage
from roadmap.integrity.requirements import RequirementSet, extract_requirements
from roadmap.lib.ids import epic_of, sort_key

if TYPE_CHECKING:
    from roadmap.pm.state import Snapshot

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class FindingKind(str, Enum):
    DANGLING_MILESTONE = "dangling_milestone"
    DANGLING_MILESTONE_EPIC = "dangling_milestone_epic"
    DANGLING_EPIC = "dangling_epic"
    BROKEN_REQUIREMENT = "broken_requirement"
    BROKEN_DEPENDENCY = "broken_dependency"
    DEPENDENCY_CYCLE = "dependency_cycle"
    CROSS_EPIC_DEPENDENCY = "cross_epic_dependency"
    DUPLICATE_STORY = "duplicate_story"
    ORPHANED_REQUIREMENT = "orphaned_requirement"
    UNLINKED_STORY = "unlinked_story"
    NO_REQUIREMENTS = "no_requirements"


SEVERITY = {
    FindingKind.DANGLING_MILESTONE: Severity.ERROR,
    FindingKind.DANGLING_MILESTONE_EPIC: Severity.ERROR,
    FindingKind.DANGLING_EPIC: Severity.ERROR,
    FindingKind.BROKEN_REQUIREMENT: Severity.ERROR,
    FindingKind.BROKEN_DEPENDENCY: Severity.ERROR,
    FindingKind.DEPENDENCY_CYCLE: Severity.WARNING,
    FindingKind.CROSS_EPIC_DEPENDENCY: Severity.WARNING,
    FindingKind.DUPLICATE_STORY: Severity.WARNING,
    FindingKind.ORPHANED_REQUIREMENT: Severity.WARNING,
    FindingKind.UNLINKED_STORY: Severity.WARNING,
    FindingKind.NO_REQUIREMENTS: Severity.INFO,
}

# Findings that describe something with no links rather than a bad link
ORPHAN_KINDS = (FindingKind.ORPHANED_REQUIREMENT, FindingKind.UNLINKED_STORY)


@dataclass(frozen=True)
class Finding:
    kind: FindingKind
    message: str
    ids: tuple[str, ...]                # Entities involved, source first
    location_type: str                  # milestone, epic, story, requirement
    location: str                       # Entity the finding is reported on
    suggestion: Optional[str] = None

    @property
    def severity(self) -> Severity:
        return SEVERITY[self.kind]


@dataclass(frozen=True)
class Link:
    source_type: str
    source: str
    target_type: str
    target: str
    type: str                           # implements, depends_on, belongs_to, contains
    valid: bool

    def to_dict(self) -> dict:
        return {
            "from": {"type": self.source_type, "id": self.source},
            "to": {"type": self.target_type, "id": self.target},
            "type": self.type,
            "valid": self.valid,
        }


@dataclass
class IntegrityReport:
    findings: list[Finding] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)

    def _of(self, severity: Severity) -> list[Finding]:
        return [f for f in self.findings if f.severity == severity]

    @property
    def errors(self) -> list[Finding]:
        return self._of(Severity.ERROR)

    @property
    def warnings(self) -> list[Finding]:
        return self._of(Severity.WARNING)

    @property
    def infos(self) -> list[Finding]:
        return self._of(Severity.INFO)

    @property
    def ok(self) -> bool:
        return not self.errors

    def by_kind(self, kind: FindingKind) -> list[Finding]:
        return [f for f in self.findings if f.kind == kind]

    def summary(self) -> dict[str, int]:
        return {
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "info": len(self.infos),
        }

    def to_dict(self, last_validated: Optional[str] = None) -> dict:
        """Document form for validation/issues.json."""
        return {
            "issues": [
                {
                    "id": f"ISS-{i:03d}",
                    "severity": f.severity.value,
                    "type": f.kind.value,
                    "location": {"type": f.location_type, "id": f.location},
                    "ids": list(f.ids),
                    "message": f.message,
                    "suggestion": f.suggestion,
                }
                for i, f in enumerate(self.findings, start=1)
            ],
            "summary": self.summary(),
            "last_validated": last_validated,
        }

    def links_dict(self, last_validated: Optional[str] = None) -> dict:
        """Document form for validation/links.json."""
        broken = [link for link in self.links if not link.valid]
        orphans = [
            {"type": f.location_type, "id": f.location, "reason": f.message}
            for f in self.findings
            if f.kind in ORPHAN_KINDS
        ]
        return {
            "links": [link.to_dict() for link in self.links],
            "broken": [link.to_dict() for link in broken],
            "orphans": orphans,
            "summary": {
                "total_links": len(self.links),
                "valid": len(self.links) - len(broken),
                "broken": len(broken),
                "orphans": len(orphans),
            },
            "last_validated": last_validated,
        }


class _Validator:
    """One validation pass. Builds lookup tables, then cross-references."""

    def __init__(self, snapshot: "Snapshot", coverage: Optional[CoverageReport]):
        self.snapshot = snapshot
        self.report = IntegrityReport()

        self.milestone_ids = {m.id for m in snapshot.milestones}
        self.epic_ids = {e.id for e in snapshot.epics}
        self.requirements: dict[str, RequirementSet] = {
            e.id: extract_requirements(snapshot.prd_text.get(e.id), e.id)
            for e in snapshot.epics
        }

        # First declaration wins for status lookups
        self.story_status: dict[str, str] = {}
        for _, story in snapshot.all_stories():
            self.story_status.setdefault(story.id, story.status)

        self.coverage = coverage or calculate_coverage(snapshot, self.requirements)

    def add(self, kind: FindingKind, message: str, ids: tuple[str, ...],
            location_type: str, location: str, suggestion: Optional[str] = None) -> None:
        self.report.findings.append(Finding(
            kind=kind,
            message=message,
            ids=ids,
            location_type=location_type,
            location=location,
            suggestion=suggestion,
        ))

    def link(self, source_type: str, source: str, target_type: str, target: str,
             link_type: str, valid: bool) -> None:
        self.report.links.append(Link(source_type, source, target_type, target, link_type, valid))

    def run(self) -> IntegrityReport:
        self.check_milestones()
        for epic in self.snapshot.epics:
            self.check_epic(epic)
        self.check_stray_collections()
        self.check_cycles()
        return self.report

    def check_milestones(self) -> None:
        for milestone in sorted(self.snapshot.milestones, key=lambda m: (m.order, sort_key(m.id))):
            for epic_id in milestone.epics:
                valid = epic_id in self.epic_ids
                self.link("milestone", milestone.id, "epic", epic_id, "contains", valid)
                if not valid:
                    self.add(
                        FindingKind.DANGLING_MILESTONE_EPIC,
                        f"Milestone {milestone.id} lists epic {epic_id}, which does not exist",
                        (milestone.id, epic_id), "milestone", milestone.id,
                        f"Remove {epic_id} from {milestone.id} or create the epic",
                    )

    def check_epic(self, epic) -> None:
        valid = epic.milestone in self.milestone_ids
        self.link("epic", epic.id, "milestone", epic.milestone, "belongs_to", valid)
        if not valid:
            self.add(
                FindingKind.DANGLING_MILESTONE,
                f"Epic {epic.id} belongs to milestone {epic.milestone}, which does not exist",
                (epic.id, epic.milestone), "epic", epic.id,
                f"Create milestone {epic.milestone} or move {epic.id} to an existing one",
            )

        collection = self.snapshot.stories.get(epic.id)
        if collection is not None and collection.epic_id != epic.id:
            self.add(
                FindingKind.DANGLING_EPIC,
                f"Stories stored under {epic.id} declare epic {collection.epic_id}",
                (collection.epic_id,), "epic", epic.id,
                f"Set epic_id to {epic.id} in its stories.json",
            )

        seen: set[str] = set()
        for story in self.snapshot.stories_for(epic.id):
            if story.id in seen:
                self.add(
                    FindingKind.DUPLICATE_STORY,
                    f"Story {story.id} is declared more than once in {epic.id}",
                    (story.id,), "story", story.id,
                    "Give each story a unique code",
                )
                continue
            seen.add(story.id)
            self.check_story(epic.id, story)

        self.check_requirements(epic.id)

    def check_story(self, epic_id: str, story) -> None:
        prefix = epic_of(story.id)
        if prefix is None or prefix not in self.epic_ids or prefix != epic_id:
            if prefix is None:
                message = f"Story code {story.id!r} is not of the form E<n>.S<m>"
            elif prefix not in self.epic_ids:
                message = f"Story {story.id} refers to epic {prefix}, which does not exist"
            else:
                message = f"Story {story.id} is stored in {epic_id}'s collection"
            self.add(
                FindingKind.DANGLING_EPIC, message, (story.id,), "story", story.id,
                f"Renumber the story under {epic_id}",
            )
        else:
            reqs = self.requirements[epic_id]
            for req_id in story.requirements:
                valid = req_id in reqs
                self.link("story", story.id, "requirement", req_id, "implements", valid)
                if not valid:
                    self.add(
                        FindingKind.BROKEN_REQUIREMENT,
                        f"Story {story.id} references {req_id}, which is not in the {epic_id} PRD",
                        (story.id, req_id), "story", story.id,
                        f"Add a '### {req_id.split('.', 1)[-1]}: ...' heading to the PRD "
                        f"or fix the reference",
                    )

        if not story.requirements:
            self.add(
                FindingKind.UNLINKED_STORY,
                "Story has no requirement links",
                (story.id,), "story", story.id,
                "Link the story to the requirement it implements",
            )

        for dep_id in story.dependencies:
            valid = dep_id in self.story_status
            self.link("story", story.id, "story", dep_id, "depends_on", valid)
            if not valid:
                self.add(
                    FindingKind.BROKEN_DEPENDENCY,
                    f"Story {story.id} depends on {dep_id}, which does not exist",
                    (story.id, dep_id), "story", story.id,
                )
            elif epic_of(dep_id) != epic_id and self.story_status[dep_id] != "done":
                self.add(
                    FindingKind.CROSS_EPIC_DEPENDENCY,
                    f"Story {story.id} depends on {dep_id} in another epic "
                    f"({self.story_status[dep_id]})",
                    (story.id, dep_id), "story", story.id,
                )

    def check_requirements(self, epic_id: str) -> None:
        prd = self.snapshot.prd_text.get(epic_id) or ""
        reqs = self.requirements[epic_id]
        if prd.strip() and len(reqs) == 0:
            self.add(
                FindingKind.NO_REQUIREMENTS,
                f"PRD for {epic_id} declares no requirements",
                (epic_id,), "epic", epic_id,
                "Add '### R1: <title>' headings to the PRD",
            )

        epic_cov = self.coverage.epics.get(epic_id)
        if epic_cov is None:
            return
        for req_id in epic_cov.uncovered:
            self.add(
                FindingKind.ORPHANED_REQUIREMENT,
                "No stories implement this requirement",
                (req_id,), "requirement", req_id,
                f"Add a story to {epic_id} that implements {req_id}",
            )

    def check_stray_collections(self) -> None:
        for collection in self.snapshot.stray_collections:
            self.add(
                FindingKind.DANGLING_EPIC,
                f"Stories collection for {collection.epic_id} has no epic",
                (collection.epic_id,), "epic", collection.epic_id,
                f"Create epic {collection.epic_id} or remove the stories",
            )

    def check_cycles(self) -> None:
        graph: dict[str, list[str]] = {}
        for _, story in self.snapshot.all_stories():
            if story.id in graph:
                continue
            graph[story.id] = [d for d in story.dependencies if d in self.story_status]

        visiting: set[str] = set()
        visited: set[str] = set()
        reported: set[tuple[str, ...]] = set()
        path: list[str] = []

        # Explicit stack of (node, remaining deps) instead of recursion
        for root in graph:
            if root in visited:
                continue
            visiting.add(root)
            path.append(root)
            stack = [(root, iter(graph[root]))]
            while stack:
                node, deps = stack[-1]
                dep = next(deps, None)
                if dep is None:
                    stack.pop()
                    path.pop()
                    visiting.discard(node)
                    visited.add(node)
                elif dep in visiting:
                    key = _canonical_cycle(path[path.index(dep):])
                    if key not in reported:
                        reported.add(key)
                        self.add(
                            FindingKind.DEPENDENCY_CYCLE,
                            "Dependency cycle: " + " -> ".join(key + (key[0],)),
                            key, "story", key[0],
                            "Remove one of the dependencies in the cycle",
                        )
                elif dep not in visited:
                    visiting.add(dep)
                    path.append(dep)
                    stack.append((dep, iter(graph.get(dep, []))))


def _canonical_cycle(cycle: list[str]) -> tuple[str, ...]:
    """Rotate a cycle so it starts at its lowest code."""
    start = min(range(len(cycle)), key=lambda i: sort_key(cycle[i]))
    return tuple(cycle[start:] + cycle[:start])


def validate_references(
    snapshot: "Snapshot",
    coverage: Optional[CoverageReport] = None,
) -> IntegrityReport:
    """Check every reference in the snapshot.

    Args:
        snapshot: Loaded documents
        coverage: Precomputed coverage, used for orphaned requirements.
            Calculated from the snapshot when not given.

    Returns:
        IntegrityReport. Deterministic for a given snapshot.
    """
    report = _Validator(snapshot, coverage).run()
    summary = report.summary()
    logger.debug(
        f"Integrity: {summary['errors']} errors, {summary['warnings']} warnings, "
        f"{summary['info']} info"
    )
    return report
