"""
roadmap feedback / roadmap stuck - manage the feedback and stuck queues.
"""

import json

from roadmap.lib.config import RoadmapConfig
from roadmap.lib.locking import project_lock
from roadmap.lib.timeutil import time_ago
from roadmap.pm import feedback as queues
from roadmap.pm.state import StateManager


def _parse_affects(values: list[str] | None) -> list[tuple[str, str]]:
    """'requirement:E1.R2' -> ("requirement", "E1.R2")."""
    affects = []
    for value in values or []:
        kind, sep, ref = value.partition(":")
        if not sep or not ref:
            raise ValueError(f"Expected <type>:<id> for --affects, got {value!r}")
        affects.append((kind, ref))
    return affects


def cmd_feedback_add(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    affects = _parse_affects(args.affects)
    with project_lock(state.store, config.lease, task="feedback add"):
        item = queues.add_feedback(
            state,
            args.type,
            args.summary,
            source_type=args.source,
            story_id=args.story,
            reported_by=args.reported_by,
            affects=affects,
            suggested_actions=args.action or [],
        )
    print(f"Added feedback {item.id} ({item.type})")
    if item.type == "blocker" and item.source.story_id:
        print(f"Story {item.source.story_id} marked blocked")
    return 0


def cmd_feedback_list(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    status = None if args.all else "pending"
    items = queues.list_feedback(state, status=status)

    if args.json:
        print(json.dumps([f.to_dict() for f in items], indent=2))
        return 0

    if not items:
        print("No pending feedback" if status else "No feedback")
        return 0

    print(f"{'ID':<8} {'TYPE':<10} {'STATUS':<13} {'STORY':<8} {'AGE':<10} SUMMARY")
    print("─" * 80)
    for item in items:
        summary = item.summary[:36] + "..." if len(item.summary) > 36 else item.summary
        print(f"{item.id:<8} {item.type:<10} {item.status:<13} "
              f"{item.source.story_id or '-':<8} {time_ago(item.created):<10} {summary}")
    print("─" * 80)
    print(f"{len(items)} item(s)")
    return 0


def cmd_feedback_resolve(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task=f"resolve {args.id}"):
        record = queues.resolve_feedback(
            state, args.id, changes_made=args.change or [], unblock=args.unblock,
        )
    print(f"Feedback {record.id} incorporated")
    for change in record.changes_made:
        print(f"  - {change}")
    return 0


def cmd_feedback_dismiss(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task=f"dismiss {args.id}"):
        queues.dismiss_feedback(state, args.id)
    print(f"Feedback {args.id} dismissed")
    return 0


def cmd_stuck_add(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    attempts = [
        {"number": i, "approach": approach, "result": "failed"}
        for i, approach in enumerate(args.attempt or [], start=1)
    ]
    with project_lock(state.store, config.lease, task="stuck add"):
        item = queues.add_stuck(
            state,
            args.task,
            args.type,
            args.summary,
            attempts=attempts,
            priority=args.priority,
        )
    print(f"Added stuck item {item.id} for {item.task_id}")
    return 0


def cmd_stuck_list(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    items = queues.list_stuck(state)

    if args.json:
        print(json.dumps([s.to_dict() for s in items], indent=2))
        return 0

    if not items:
        print("Nothing stuck")
        return 0

    for item in items:
        print(f"{item.id:<9} {item.priority:<7} {item.task_id:<10} {item.summary}")
        for attempt in item.attempts:
            print(f"    #{attempt.number}: {attempt.approach} -> {attempt.result}")
    return 0


def cmd_stuck_resolve(args, state: StateManager, config: RoadmapConfig) -> int:
    state.require_initialized()
    with project_lock(state.store, config.lease, task=f"resolve {args.id}"):
        record = queues.resolve_stuck(state, args.id, args.resolution, resolved_by=args.by)
    print(f"Stuck item {record.id} resolved by {record.resolved_by}")
    return 0
