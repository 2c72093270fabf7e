"""Tests for the roadmap CLI."""

import json
from datetime import timedelta

import pytest

from roadmap.cli import EXIT_ERROR, EXIT_LOCKED, EXIT_USAGE, get_project_dir, main
from roadmap.lib.locking import LockManager
from roadmap.lib.store import FileSystemStore


@pytest.fixture
def run(tmp_path, capsys):
    """Run the CLI against tmp_path; returns (exit code, stdout, stderr)."""
    def _run(*argv):
        code = main(["--dir", str(tmp_path), *argv])
        captured = capsys.readouterr()
        return code, captured.out, captured.err
    return _run


@pytest.fixture
def project(run, tmp_path):
    """Initialized project with M1, E1 (two requirements) and one story."""
    prd = tmp_path / "prd.md"
    prd.write_text("# Auth\n\n### R1: Login\n\n### R2: Logout\n")
    assert run("init", "Shop")[0] == 0
    assert run("milestone", "add", "MVP")[0] == 0
    assert run("epic", "add", "M1", "Authentication")[0] == 0
    assert run("prd", "save", "E1", "--file", str(prd))[0] == 0
    assert run("story", "add", "E1", "Login form", "-r", "E1.R1")[0] == 0
    return tmp_path


class TestProjectDir:
    def test_dir_flag_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ROADMAP_DIR", "/somewhere/else")

        class Args:
            dir = str(tmp_path)

        assert get_project_dir(Args()) == tmp_path

    def test_env_then_cwd(self, monkeypatch, tmp_path):
        class Args:
            dir = None

        monkeypatch.setenv("ROADMAP_DIR", str(tmp_path))
        assert get_project_dir(Args()) == tmp_path
        monkeypatch.delenv("ROADMAP_DIR")
        monkeypatch.chdir(tmp_path)
        assert get_project_dir(Args()) == tmp_path


class TestInit:
    def test_init(self, run, tmp_path):
        code, out, _ = run("init", "Shop", "-d", "Online shop")
        assert code == 0
        assert "Initialized project: Shop (shop)" in out
        assert (tmp_path / ".roadmap" / "project.json").exists()
        assert not (tmp_path / ".roadmap" / ".lock").exists()

    def test_init_twice_needs_force(self, run):
        run("init", "Shop")
        code, out, _ = run("init", "Shop")
        assert code == EXIT_USAGE
        assert "--force" in out
        assert run("init", "Shop", "--force")[0] == 0

    def test_commands_need_init(self, run):
        code, _, err = run("status")
        assert code == EXIT_USAGE
        assert "roadmap init" in err

    def test_no_command_prints_help(self, run):
        code, out, _ = run()
        assert code == EXIT_USAGE
        assert "usage:" in out


class TestPlanningCommands:
    def test_status_json(self, project, run):
        code, out, _ = run("status", "--json")
        assert code == 0
        status = json.loads(out)
        assert status["project"]["name"] == "Shop"
        assert status["stats"] == {"milestones": 1, "epics": 1, "stories": 1,
                                   "completed_stories": 0}
        assert status["epics"][0]["status"] == "drafting"
        assert status["epics"][0]["coverage"] == 50
        assert status["next_step"] == "write_architecture"
        assert status["lock"] == "free"

    def test_epic_show(self, project, run):
        code, out, _ = run("epic", "show", "E1")
        assert code == 0
        assert "E1.R2" in out and "GAP" in out

    def test_missing_epic(self, project, run):
        code, _, err = run("epic", "show", "E9")
        assert code == EXIT_ERROR
        assert "Epic not found: E9" in err

    def test_story_mark_and_invalid_transition(self, project, run):
        assert run("story", "mark", "E1.S1", "in_progress", "--assignee", "dev")[0] == 0
        assert run("story", "mark", "E1.S1", "done")[0] == 0
        code, _, err = run("story", "mark", "E1.S1", "review")
        assert code == EXIT_ERROR
        assert "Cannot move E1.S1 from done to review" in err

    def test_stories_save_from_file(self, project, run, tmp_path):
        stories = tmp_path / "stories.json"
        stories.write_text(json.dumps({"stories": [
            {"title": "Login form", "requirements": ["E1.R1"]},
            {"title": "Logout button", "requirements": ["E1.R2"]},
        ]}))
        code, out, _ = run("stories", "save", "E1", "--file", str(stories))
        assert code == 0
        assert "Saved 2 stories for E1" in out
        assert "Uncovered" not in out


class TestValidateCommands:
    def test_validate_clean_after_full_coverage(self, project, run):
        run("story", "add", "E1", "Logout button", "-r", "E1.R2")
        code, out, _ = run("validate")
        assert code == 0
        assert "0 error(s)" in out
        assert (project / ".roadmap" / "validation" / "issues.json").exists()

    def test_validate_exits_nonzero_on_errors(self, project, run):
        run("story", "add", "E1", "Reset password", "-r", "E1.R5")
        code, out, _ = run("validate", "--json")
        assert code == EXIT_ERROR
        result = json.loads(out)
        assert result["summary"]["errors"] == 1
        assert result["issues"][0]["type"] in ("broken_requirement", "orphaned_requirement")

        stored = json.loads((project / ".roadmap" / "epics" / "E1-authentication"
                             / "stories.json").read_text())
        assert stored["validation"]["all_links_valid"] is False

    def test_coverage(self, project, run):
        code, out, _ = run("coverage", "--json")
        assert code == 0
        assert json.loads(out)["summary"]["coverage_percent"] == 50


class TestLockCommands:
    def test_mutation_refused_while_locked(self, project, run):
        LockManager(FileSystemStore(project)).acquire("worker", "E1.S1")
        code, _, err = run("milestone", "add", "Beta")
        assert code == EXIT_LOCKED
        assert "held by worker" in err

        assert run("lock", "status")[1].startswith("Lock: held")
        assert run("lock", "release")[0] == EXIT_LOCKED
        assert run("lock", "release", "--force")[0] == 0
        assert run("milestone", "add", "Beta")[0] == 0

    def test_expired_lock_released_without_force(self, project, run):
        manager = LockManager(FileSystemStore(project), lease=timedelta(seconds=-1))
        manager.acquire("worker")
        code, out, _ = run("lock", "release")
        assert code == 0
        assert "Released expired lock" in out

    def test_force_release_clears_corrupt_lock(self, project, run):
        """A half-written lock blocks acquire; --force removes it without reading it."""
        lock_file = project / ".roadmap" / ".lock"
        lock_file.write_text("")

        code, out, _ = run("lock", "release")
        assert code == EXIT_ERROR
        assert "--force" in out
        assert lock_file.exists()

        code, out, _ = run("lock", "release", "--force")
        assert code == 0
        assert "Released lock" in out
        assert not lock_file.exists()
        assert run("milestone", "add", "Beta")[0] == 0


class TestFeedbackCommands:
    def test_blocker_flow(self, project, run):
        code, out, _ = run("feedback", "add", "blocker", "Keys missing", "--story", "E1.S1",
                           "--affects", "requirement:E1.R1")
        assert code == 0
        assert "FB-001" in out and "E1.S1 marked blocked" in out

        code, out, _ = run("feedback", "list", "--json")
        assert [f["id"] for f in json.loads(out)] == ["FB-001"]

        assert run("feedback", "resolve", "FB-001", "-c", "Added keys", "--unblock")[0] == 0
        assert "No pending feedback" in run("feedback", "list")[1]

    def test_bad_affects(self, project, run):
        code, _, err = run("feedback", "add", "gap", "Hmm", "--affects", "E1.R1")
        assert code == EXIT_USAGE
        assert "<type>:<id>" in err

    def test_stuck_flow(self, project, run):
        assert run("stuck", "add", "E1.S1", "Flaky test", "--attempt", "retry")[0] == 0
        assert "STK-001" in run("stuck", "list")[1]
        assert run("stuck", "resolve", "STK-001", "Fixed fixture")[0] == 0
        assert "Nothing stuck" in run("stuck")[1]
