"""
Integrity checks over a loaded snapshot: requirement extraction, coverage,
reference validation and derived status. Everything here is a pure function
of its inputs and never touches the store.
"""

from roadmap.integrity.coverage import (
    CoverageGap,
    CoverageReport,
    EpicCoverage,
    calculate_coverage,
    calculate_epic_coverage,
)
from roadmap.integrity.graph import (
    Finding,
    FindingKind,
    IntegrityReport,
    Link,
    Severity,
    validate_references,
)
from roadmap.integrity.requirements import (
    Requirement,
    RequirementSet,
    count_requirements,
    extract_requirements,
)
from roadmap.integrity.status import (
    EpicStatus,
    MilestoneStatus,
    NextStep,
    derive_epic_status,
    derive_milestone_status,
    derive_next_step,
    story_counts,
)

__all__ = [
    "CoverageGap",
    "CoverageReport",
    "EpicCoverage",
    "EpicStatus",
    "Finding",
    "FindingKind",
    "IntegrityReport",
    "Link",
    "MilestoneStatus",
    "NextStep",
    "Requirement",
    "RequirementSet",
    "Severity",
    "calculate_coverage",
    "calculate_epic_coverage",
    "count_requirements",
    "derive_epic_status",
    "derive_milestone_status",
    "derive_next_step",
    "extract_requirements",
    "story_counts",
    "validate_references",
]
