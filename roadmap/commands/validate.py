"""
roadmap validate / roadmap coverage - integrity and coverage reports.

validate runs under the project lock because it writes its results back:
validation/{coverage,links,issues}.json, per-epic stats and each stories
collection's validation block. coverage only reads.
"""

import json
import logging

from roadmap.integrity.coverage import CoverageReport, calculate_coverage
from roadmap.integrity.graph import IntegrityReport, Severity, validate_references
from roadmap.lib.config import RoadmapConfig
from roadmap.lib.constants import COVERAGE_KEY, ISSUES_KEY, LINKS_KEY
from roadmap.lib.locking import project_lock
from roadmap.lib.timeutil import now_iso
from roadmap.pm.models import StoriesValidation
from roadmap.pm.state import StateManager

logger = logging.getLogger(__name__)

SEVERITY_LABEL = {
    Severity.ERROR: "ERROR",
    Severity.WARNING: "WARN ",
    Severity.INFO: "INFO ",
}


def run_validation(state: StateManager) -> tuple[CoverageReport, IntegrityReport]:
    """Validate the project and write results back. Caller holds the lock."""
    snapshot = state.load_snapshot()
    coverage = calculate_coverage(snapshot)
    report = validate_references(snapshot, coverage)
    now = now_iso()

    state.write_validation(COVERAGE_KEY, coverage.to_dict(now), "coverage")
    state.write_validation(LINKS_KEY, report.links_dict(now), "links")
    state.write_validation(ISSUES_KEY, report.to_dict(now), "issues")

    broken_sources = {
        link.source for link in report.links
        if not link.valid and link.source_type == "story"
    }
    for epic in snapshot.epics:
        cov = coverage.epics[epic.id]
        epic.stats.requirements = cov.total
        epic.stats.coverage = cov.percent
        epic.stats.stories = len(snapshot.stories_for(epic.id))
        state.write_epic(epic)

        collection = snapshot.stories.get(epic.id)
        if collection is None:
            continue
        collection.coverage = {req_id: list(ids) for req_id, ids in cov.requirements.items()}
        collection.validation = StoriesValidation(
            coverage_complete=cov.complete,
            all_links_valid=not any(s.id in broken_sources for s in collection.stories),
            last_validated=now,
        )
        state.write_stories(epic, collection)

    summary = report.summary()
    logger.info(
        f"Validated {len(snapshot.epics)} epics: {summary['errors']} errors, "
        f"{summary['warnings']} warnings, coverage {coverage.percent}%"
    )
    return coverage, report


def cmd_validate(args, state: StateManager, config: RoadmapConfig) -> int:
    """Validate references and coverage; exit 1 when there are errors."""
    state.require_initialized()
    with project_lock(state.store, config.lease, task="validate"):
        coverage, report = run_validation(state)

    if args.json:
        print(json.dumps({
            "issues": report.to_dict()["issues"],
            "summary": report.summary(),
            "coverage": coverage.to_dict()["summary"],
        }, indent=2))
        return 1 if report.errors else 0

    print("Validation")
    print("=" * 60)
    if not report.findings:
        print("No issues found")
    for finding in report.findings:
        print(f"{SEVERITY_LABEL[finding.severity]} {finding.kind.value:<24} {finding.message}")
        if finding.suggestion and args.verbose:
            print(f"      -> {finding.suggestion}")

    summary = report.summary()
    print("-" * 60)
    print(f"{summary['errors']} error(s), {summary['warnings']} warning(s), {summary['info']} info")
    print(f"Coverage: {coverage.covered}/{coverage.total_requirements} requirements "
          f"({coverage.percent}%)")
    return 1 if report.errors else 0


def cmd_coverage(args, state: StateManager, config: RoadmapConfig) -> int:
    """Show requirement coverage without writing anything."""
    snapshot = state.load_snapshot()
    coverage = calculate_coverage(snapshot)

    if args.json:
        print(json.dumps(coverage.to_dict(), indent=2))
        return 0

    print(f"{'EPIC':<8} {'COVERED':>8} {'TOTAL':>6} {'PCT':>5}")
    print("─" * 32)
    for epic_id, cov in coverage.epics.items():
        note = "  (no requirements)" if cov.no_requirements else ""
        print(f"{epic_id:<8} {cov.covered:>8} {cov.total:>6} {cov.percent:>4}%{note}")
    print("─" * 32)
    print(f"{'TOTAL':<8} {coverage.covered:>8} {coverage.total_requirements:>6} "
          f"{coverage.percent:>4}%")

    if coverage.gaps:
        print()
        print("Gaps:")
        for gap in coverage.gaps:
            print(f"  {gap.requirement:<10} {gap.text or ''}")
    return 0
