"""
roadmap status - project overview with derived statuses.

Read-only; does not take the lock.
"""

import json

from roadmap.integrity.status import (
    derive_epic_status,
    derive_milestone_status,
    derive_next_step,
    story_counts,
)
from roadmap.lib.config import RoadmapConfig
from roadmap.lib.locking import LockManager
from roadmap.pm.state import StateManager

NEXT_STEP_HINTS = {
    "define_milestones": "Define milestones: roadmap milestone add <name>",
    "add_epics": "Add epics: roadmap epic add <milestone> <name>",
    "write_prd": "Write PRDs: roadmap prd save <epic> --file prd.md",
    "write_architecture": "Write architecture: roadmap arch save <epic> --file architecture.md",
    "generate_stories": "Generate stories: roadmap stories save <epic> --file stories.json",
    "implement_stories": "Implement stories: roadmap story mark <story> in_progress",
    "complete": "All epics done",
}


def build_status(state: StateManager, config: RoadmapConfig) -> dict:
    snapshot = state.load_snapshot()
    project = snapshot.project

    epic_statuses = {}
    epics = []
    for epic in snapshot.epics:
        stories = snapshot.stories_for(epic.id)
        status = derive_epic_status(epic, stories)
        epic_statuses[epic.id] = status
        epics.append({
            "id": epic.id,
            "name": epic.name,
            "milestone": epic.milestone,
            "status": status.value,
            "artifacts": {
                "prd": epic.artifacts.prd.status,
                "architecture": epic.artifacts.architecture.status,
                "stories": epic.artifacts.stories.status,
            },
            "stories": story_counts(stories),
            "coverage": epic.stats.coverage,
        })

    milestones = [
        {
            "id": m.id,
            "name": m.name,
            "status": derive_milestone_status(m, epic_statuses).value,
            "epics": list(m.epics),
        }
        for m in sorted(snapshot.milestones, key=lambda m: m.order)
    ]

    feedback = state.read_feedback_queue()
    stuck = state.read_stuck_queue()
    lock = LockManager(state.store, lease=config.lease)

    return {
        "project": {"id": project.id, "name": project.name, "status": project.status},
        "stats": project.stats.to_dict(),
        "milestones": milestones,
        "epics": epics,
        "next_step": derive_next_step(snapshot).value,
        "pending_feedback": sum(1 for f in feedback.feedback if f.status == "pending"),
        "stuck": len(stuck.stuck),
        "lock": lock.status(),
    }


def cmd_status(args, state: StateManager, config: RoadmapConfig) -> int:
    """Show project, milestones and epics with derived status."""
    status = build_status(state, config)

    if args.json:
        print(json.dumps(status, indent=2))
        return 0

    stats = status["stats"]
    print(f"Project: {status['project']['name']} ({status['project']['status']})")
    print(f"  {stats['milestones']} milestones, {stats['epics']} epics, "
          f"{stats['completed_stories']}/{stats['stories']} stories done")
    print()

    epics_by_id = {e["id"]: e for e in status["epics"]}
    for milestone in status["milestones"]:
        print(f"{milestone['id']}: {milestone['name']} [{milestone['status']}]")
        for epic_id in milestone["epics"]:
            epic = epics_by_id.get(epic_id)
            if epic is None:
                print(f"  {epic_id:<6} (missing)")
                continue
            done = epic["stories"]["done"]
            total = sum(epic["stories"].values())
            print(f"  {epic['id']:<6} {epic['name'][:32]:<32} {epic['status']:<12} "
                  f"{done}/{total} stories  {epic['coverage']}% covered")

    print()
    if status["pending_feedback"]:
        print(f"Pending feedback: {status['pending_feedback']}")
    if status["stuck"]:
        print(f"Stuck items: {status['stuck']}")
    if status["lock"] != "free":
        print(f"Lock: {status['lock']}")
    print(f"Next: {NEXT_STEP_HINTS[status['next_step']]}")
    return 0
