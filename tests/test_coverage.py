"""Tests for roadmap.integrity.coverage module."""

import pytest

from roadmap.integrity.coverage import calculate_coverage, calculate_epic_coverage, percent
from roadmap.integrity.requirements import extract_requirements
from roadmap.lib.validate import validate

from conftest import TS, story


TWO_REQS = "### R1: Login\n### R2: Logout\n"


class TestPercent:
    @pytest.mark.parametrize("covered,total,expected", [
        (0, 0, 100),
        (0, 4, 0),
        (4, 4, 100),
        (1, 8, 13),     # 12.5 rounds up
        (1, 3, 33),
        (2, 3, 67),
        (1, 200, 1),    # 0.5 rounds up
    ])
    def test_rounds_half_up(self, covered, total, expected):
        assert percent(covered, total) == expected


class TestCalculateEpicCoverage:
    """Tests for calculate_epic_coverage()."""

    def test_fully_covered(self):
        """Should report 100% when every requirement has a story."""
        reqs = extract_requirements(TWO_REQS, "E1")
        cov = calculate_epic_coverage("E1", reqs, [
            story("E1.S1", ["E1.R1"]),
            story("E1.S3", ["E1.R2"]),
        ])
        assert cov.percent == 100
        assert cov.uncovered == ()
        assert cov.requirements == {"E1.R1": ("E1.S1",), "E1.R2": ("E1.S3",)}
        assert cov.complete

    def test_partial(self):
        reqs = extract_requirements(TWO_REQS + "### R3: Reset\n", "E1")
        cov = calculate_epic_coverage("E1", reqs, [story("E1.S1", ["E1.R1"])])
        assert cov.total == 3
        assert cov.covered == 1
        assert cov.percent == 33
        assert cov.uncovered == ("E1.R2", "E1.R3")
        assert not cov.complete

    def test_no_requirements_counts_as_complete(self):
        """An epic with nothing to cover is 100% but flagged."""
        cov = calculate_epic_coverage("E1", extract_requirements("", "E1"), [story("E1.S1")])
        assert cov.percent == 100
        assert cov.total == 0
        assert cov.no_requirements
        assert cov.complete

    def test_story_listed_once_per_requirement(self):
        """Repeated references and duplicate codes do not inflate the mapping."""
        reqs = extract_requirements(TWO_REQS, "E1")
        cov = calculate_epic_coverage("E1", reqs, [
            story("E1.S1", ["E1.R1", "E1.R1"]),
            story("E1.S2", ["E1.R1"]),
            story("E1.S1", ["E1.R1"]),
        ])
        assert cov.requirements["E1.R1"] == ("E1.S1", "E1.S2")

    def test_unknown_requirement_references_ignored(self):
        """A story pointing at a missing requirement covers nothing."""
        reqs = extract_requirements(TWO_REQS, "E1")
        cov = calculate_epic_coverage("E1", reqs, [story("E1.S9", ["E1.R5"])])
        assert cov.covered == 0
        assert "E1.R5" not in cov.requirements


class TestCalculateCoverage:
    """Tests for calculate_coverage() over a snapshot."""

    def test_project_totals_and_gaps(self, make_snapshot, make_epic):
        snapshot = make_snapshot(
            epics=[make_epic("E1"), make_epic("E2")],
            prds={"E1": TWO_REQS, "E2": "### R1: Search\n"},
            stories={"E1": [story("E1.S1", ["E1.R1"])], "E2": []},
        )
        report = calculate_coverage(snapshot)

        assert report.total_requirements == 3
        assert report.covered == 1
        assert report.percent == 33
        assert [(g.requirement, g.epic) for g in report.gaps] == [("E1.R2", "E1"), ("E2.R1", "E2")]
        assert report.gaps[0].text == "Logout"
        assert report.gaps[0].reason == "No stories implement this requirement"

    def test_only_own_collection_counts(self, make_snapshot, make_epic):
        """A story in another epic cannot cover this epic's requirement."""
        snapshot = make_snapshot(
            epics=[make_epic("E1"), make_epic("E2")],
            prds={"E1": "### R1: Login\n"},
            stories={"E2": [story("E2.S1", ["E1.R1"])]},
        )
        report = calculate_coverage(snapshot)
        assert report.epics["E1"].uncovered == ("E1.R1",)

    def test_recalculation_is_idempotent(self, make_snapshot, make_epic):
        """Should produce the same document when run twice on one snapshot."""
        snapshot = make_snapshot(
            epics=[make_epic("E1"), make_epic("E2")],
            prds={"E1": TWO_REQS, "E2": "### R1: Search\n### R1: Search again\n"},
            stories={
                "E1": [story("E1.S2", ["E1.R2", "E1.R1"]), story("E1.S1", ["E1.R1"])],
                "E2": [story("E2.S1", ["E2.R1"])],
            },
        )
        first = calculate_coverage(snapshot).to_dict(last_validated=TS)
        second = calculate_coverage(snapshot).to_dict(last_validated=TS)
        assert first == second

    def test_empty_project(self, make_snapshot):
        report = calculate_coverage(make_snapshot(epics=[]))
        assert report.total_requirements == 0
        assert report.percent == 100
        assert report.gaps == []

    def test_document_matches_schema(self, make_snapshot):
        snapshot = make_snapshot(
            prds={"E1": TWO_REQS},
            stories={"E1": [story("E1.S1", ["E1.R1"])]},
        )
        data = calculate_coverage(snapshot).to_dict(last_validated="2026-01-01T00:00:00+00:00")
        validate(data, "coverage")
        assert data["coverage"]["E1"]["E1.R2"] == {"stories": [], "status": "gap"}
        assert data["summary"] == {
            "total_requirements": 2,
            "covered": 1,
            "gaps": 1,
            "coverage_percent": 50,
        }
