"""
roadmap lock - inspect or clear the project lock.
"""

import json

from roadmap.lib.config import RoadmapConfig
from roadmap.lib.constants import LOCK_KEY
from roadmap.lib.locking import LockManager
from roadmap.lib.timeutil import time_ago
from roadmap.lib.validate import ValidationError
from roadmap.pm.state import StateManager


def cmd_lock_status(args, state: StateManager, config: RoadmapConfig) -> int:
    manager = LockManager(state.store, lease=config.lease)
    lock = manager.read()
    status = manager.status()

    if args.json:
        print(json.dumps({
            "status": status,
            "lock": None if lock is None else {
                "holder": lock.holder,
                "task": lock.task,
                "started": lock.started,
                "timeout": lock.timeout,
            },
        }, indent=2))
        return 0

    if lock is None:
        print("Lock: free")
        return 0

    print(f"Lock: {status}")
    print(f"  Holder:  {lock.holder}" + (f" ({lock.task})" if lock.task else ""))
    print(f"  Started: {lock.started} ({time_ago(lock.started)})")
    print(f"  Timeout: {lock.timeout}")
    return 0


def cmd_lock_release(args, state: StateManager, config: RoadmapConfig) -> int:
    """Remove the lock. Refuses an unexpired lock unless --force."""
    manager = LockManager(state.store, lease=config.lease)

    # --force never reads the lock, so a corrupt .lock can still be cleared
    if args.force:
        if not state.store.exists(LOCK_KEY):
            print("Lock: free")
            return 0
        manager.release()
        print("Released lock")
        return 0

    try:
        status = manager.status()
    except ValidationError as e:
        print(f"ERROR: {e}")
        print("Use --force to release it anyway")
        return 1

    if status == "free":
        print("Lock: free")
        return 0

    if status == "held":
        lock = manager.read()
        print(f"ERROR: Lock is held by {lock.holder} until {lock.timeout}")
        print("Use --force to release it anyway")
        return 3

    manager.release()
    print(f"Released {status} lock")
    return 0
