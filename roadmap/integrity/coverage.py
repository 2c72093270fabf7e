"""
Requirement coverage.

A requirement is covered when at least one story in its epic's own
collection lists it. Percentages are whole numbers rounded half up. An epic
with no requirements counts as 100% covered and is flagged
no_requirements so callers can tell "nothing to cover" from "all covered".
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from roadmap.integrity.requirements import RequirementSet, extract_requirements
from roadmap.pm.models import Story

if TYPE_CHECKING:
    from roadmap.pm.state import Snapshot

logger = logging.getLogger(__name__)


def percent(covered: int, total: int) -> int:
    """covered/total as a whole percent, rounded half up. 100 when total is 0."""
    if total == 0:
        return 100
    return (200 * covered + total) // (2 * total)


@dataclass(frozen=True)
class EpicCoverage:
    epic_id: str
    requirements: dict[str, tuple[str, ...]]   # requirement -> covering story codes
    total: int
    covered: int
    percent: int
    uncovered: tuple[str, ...]
    no_requirements: bool = False

    @property
    def complete(self) -> bool:
        return not self.uncovered


@dataclass(frozen=True)
class CoverageGap:
    requirement: str
    epic: str
    text: Optional[str] = None
    reason: str = "No stories implement this requirement"


@dataclass
class CoverageReport:
    epics: dict[str, EpicCoverage] = field(default_factory=dict)
    gaps: list[CoverageGap] = field(default_factory=list)

    @property
    def total_requirements(self) -> int:
        return sum(c.total for c in self.epics.values())

    @property
    def covered(self) -> int:
        return sum(c.covered for c in self.epics.values())

    @property
    def gap_count(self) -> int:
        return len(self.gaps)

    @property
    def percent(self) -> int:
        return percent(self.covered, self.total_requirements)

    def to_dict(self, last_validated: Optional[str] = None) -> dict:
        """Document form for validation/coverage.json."""
        return {
            "coverage": {
                epic_id: {
                    req_id: {
                        "stories": list(stories),
                        "status": "covered" if stories else "gap",
                    }
                    for req_id, stories in cov.requirements.items()
                }
                for epic_id, cov in self.epics.items()
            },
            "epics": {
                epic_id: {
                    "total": cov.total,
                    "covered": cov.covered,
                    "percent": cov.percent,
                    "no_requirements": cov.no_requirements,
                }
                for epic_id, cov in self.epics.items()
            },
            "summary": {
                "total_requirements": self.total_requirements,
                "covered": self.covered,
                "gaps": self.gap_count,
                "coverage_percent": self.percent,
            },
            "gaps": [
                {"requirement": g.requirement, "epic": g.epic, "text": g.text, "reason": g.reason}
                for g in self.gaps
            ],
            "last_validated": last_validated,
        }


def calculate_epic_coverage(
    epic_id: str,
    requirements: RequirementSet,
    stories: Iterable[Story],
) -> EpicCoverage:
    """Map each requirement to the stories that claim it.

    Story codes appear in collection order, once each, even when a story
    lists the same requirement twice or a code is declared twice.
    """
    stories = list(stories)
    mapping: dict[str, tuple[str, ...]] = {}
    for req_id in requirements.ids:
        covering: list[str] = []
        for story in stories:
            if req_id in story.requirements and story.id not in covering:
                covering.append(story.id)
        mapping[req_id] = tuple(covering)

    total = len(mapping)
    covered = sum(1 for s in mapping.values() if s)
    return EpicCoverage(
        epic_id=epic_id,
        requirements=mapping,
        total=total,
        covered=covered,
        percent=percent(covered, total),
        uncovered=tuple(r for r, s in mapping.items() if not s),
        no_requirements=total == 0,
    )


def calculate_coverage(
    snapshot: "Snapshot",
    requirement_sets: Optional[dict[str, RequirementSet]] = None,
) -> CoverageReport:
    """Coverage for every epic in the snapshot, in epic order."""
    report = CoverageReport()
    for epic in snapshot.epics:
        if requirement_sets is not None and epic.id in requirement_sets:
            reqs = requirement_sets[epic.id]
        else:
            reqs = extract_requirements(snapshot.prd_text.get(epic.id), epic.id)

        cov = calculate_epic_coverage(epic.id, reqs, snapshot.stories_for(epic.id))
        report.epics[epic.id] = cov
        for req_id in cov.uncovered:
            requirement = reqs.get(req_id)
            report.gaps.append(CoverageGap(
                requirement=req_id,
                epic=epic.id,
                text=requirement.title if requirement else None,
            ))

    logger.debug(
        f"Coverage: {report.covered}/{report.total_requirements} requirements "
        f"({report.percent}%)"
    )
    return report
