"""
roadmap init / milestone / epic / prd / arch / story / stories -
planning commands.

Every command here mutates the store and runs under the project lock.
"""

import json
import sys
from pathlib import Path

from roadmap.integrity.requirements import extract_requirements
from roadmap.integrity.status import derive_epic_status, story_counts
from roadmap.lib.config import RoadmapConfig
from roadmap.lib.locking import project_lock
from roadmap.pm import planning
from roadmap.pm.lifecycle import mark_story
from roadmap.pm.state import StateManager


def read_input(path: str | None) -> str:
    """Content from a file, or stdin when path is None or '-'."""
    if path is None or path == "-":
        return sys.stdin.read()
    return Path(path).read_text()


def _split(values: list[str] | None) -> list[str]:
    """Accept repeated flags and comma-separated values alike."""
    result = []
    for value in values or []:
        result.extend(v.strip() for v in value.split(",") if v.strip())
    return result


def cmd_init(args, state: StateManager, config: RoadmapConfig) -> int:
    if state.is_initialized() and not args.force:
        project = state.read_project()
        print(f"ERROR: Project '{project.name}' already initialized. Use --force to re-create it.")
        return 2

    with project_lock(state.store, config.lease, task="init"):
        project = state.initialize(args.name, description=args.description)

    print(f"Initialized project: {project.name} ({project.id})")
    print("Next: roadmap milestone add <name>")
    return 0


# ---------------------------------------------------------------------------
# Milestones and epics
# ---------------------------------------------------------------------------

def cmd_milestone_add(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task="milestone add"):
        milestone = planning.add_milestone(
            state, args.name, description=args.description or "", order=args.order,
        )
    print(f"Created milestone {milestone.id}: {milestone.name}")
    return 0


def cmd_milestone_list(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    index = state.read_milestone_index()

    if args.json:
        print(json.dumps(index.to_dict(), indent=2))
        return 0

    if not index.milestones:
        print("No milestones")
        return 0

    for milestone in sorted(index.milestones, key=lambda m: m.order):
        epics = ", ".join(milestone.epics) or "-"
        print(f"{milestone.id:<6} {milestone.name:<32} epics: {epics}")
    return 0


def cmd_epic_add(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task="epic add"):
        epic = planning.add_epic(
            state,
            args.milestone,
            args.name,
            description=args.description or "",
            dependencies=_split(args.depends_on),
        )
    print(f"Created epic {epic.id}: {epic.name} (in {epic.milestone})")
    print(f"Next: roadmap prd save {epic.id} --file prd.md")
    return 0


def cmd_epic_show(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    epic = state.require_epic(args.epic)
    collection = state.read_stories(epic)
    stories = collection.stories if collection else []
    reqs = extract_requirements(state.read_prd(epic), epic.id)
    status = derive_epic_status(epic, stories)

    if args.json:
        print(json.dumps({
            "epic": epic.to_dict(),
            "status": status.value,
            "requirements": [{"id": r.id, "title": r.title} for r in reqs],
            "stories": [s.to_dict() for s in stories],
        }, indent=2))
        return 0

    print(f"Epic {epic.id}: {epic.name}")
    print("=" * 60)
    print(f"Status:       {status.value}")
    print(f"Milestone:    {epic.milestone}")
    if epic.dependencies:
        print(f"Depends on:   {', '.join(epic.dependencies)}")
    print(f"PRD:          {epic.artifacts.prd.status} (v{epic.artifacts.prd.version})")
    print(f"Architecture: {epic.artifacts.architecture.status} "
          f"(v{epic.artifacts.architecture.version})")
    print(f"Stories:      {epic.artifacts.stories.status} ({len(stories)})")
    print()

    if reqs:
        print("Requirements")
        print("-" * 40)
        for req in reqs:
            covering = (collection.coverage.get(req.id) if collection else None) or []
            marker = ", ".join(covering) if covering else "GAP"
            print(f"  {req.id:<8} {req.title[:36]:<36} {marker}")
        print()

    if stories:
        print("Stories")
        print("-" * 40)
        for story in stories:
            print(f"  {story.id:<8} {story.status:<12} {story.title[:40]}")
        counts = story_counts(stories)
        print()
        print("  " + ", ".join(f"{k}: {v}" for k, v in counts.items() if v))
    return 0


def cmd_epic_defer(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task=f"defer {args.epic}"):
        planning.defer_epic(state, args.epic)
    print(f"Deferred {args.epic}")
    return 0


def cmd_epic_resume(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task=f"resume {args.epic}"):
        planning.resume_epic(state, args.epic)
    print(f"Resumed {args.epic}")
    return 0


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------

def cmd_prd_save(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    content = read_input(args.file)
    with project_lock(state.store, config.lease, task=f"prd {args.epic}"):
        epic = planning.save_prd(state, args.epic, content, status=args.status)
    print(f"Saved PRD for {epic.id} (v{epic.artifacts.prd.version}, "
          f"{epic.stats.requirements} requirements)")
    if epic.stats.requirements == 0:
        print("WARNING: No requirement headings found (expected '### R1: <title>')")
    return 0


def cmd_arch_save(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    content = read_input(args.file)
    with project_lock(state.store, config.lease, task=f"architecture {args.epic}"):
        epic = planning.save_architecture(state, args.epic, content, status=args.status)
    print(f"Saved architecture for {epic.id} (v{epic.artifacts.architecture.version})")
    return 0


def cmd_artifact_status(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task=f"{args.artifact} {args.epic}"):
        planning.set_artifact_status(state, args.epic, args.artifact, args.status)
    print(f"{args.epic} {args.artifact}: {args.status}")
    return 0


# ---------------------------------------------------------------------------
# Stories
# ---------------------------------------------------------------------------

def cmd_story_add(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task=f"story add {args.epic}"):
        story = planning.add_story(
            state,
            args.epic,
            args.title,
            description=args.description or "",
            type=args.type,
            requirements=_split(args.requirement),
            acceptance_criteria=args.criterion or [],
            dependencies=_split(args.depends_on),
            estimated_points=args.points,
        )
    print(f"Created story {story.id}: {story.title}")
    return 0


def cmd_stories_save(args, state: StateManager, config: RoadmapConfig) -> int:
    """Replace an epic's stories from a JSON list (or {"stories": [...]})."""
    state.require_initialized()
    data = json.loads(read_input(args.file))
    items = data.get("stories", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        print("ERROR: Expected a JSON list of stories")
        return 2

    with project_lock(state.store, config.lease, task=f"stories {args.epic}"):
        collection = planning.save_stories(state, args.epic, items, status=args.status)

    print(f"Saved {len(collection.stories)} stories for {args.epic}")
    gaps = [req for req, ids in collection.coverage.items() if not ids]
    if gaps:
        print(f"Uncovered requirements: {', '.join(gaps)}")
    return 0


def cmd_story_mark(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task=f"mark {args.story}"):
        story = mark_story(
            state,
            args.story,
            args.status,
            reason=args.reason,
            assignee=args.assignee,
            force=args.force,
        )
    print(f"{story.id}: {story.status}" + (f" ({story.blocked_reason})" if story.blocked_reason else ""))
    return 0
