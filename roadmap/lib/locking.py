"""
Lease-based advisory lock for mutations against the store.

A single lock document (.lock) serializes writers across processes and
hosts that share a store. The lock expires after its lease so a crashed
holder cannot wedge the project; an expired lock is simply overwritten by
the next acquirer.

Known limitation: taking over an expired lock is read-then-write. Two
acquirers that both observe the same expired lock can both believe they won
(last write wins). Acquiring an empty slot uses the store's atomic
create_exclusive when the adapter has one, which closes that race for the
common case. There is no heartbeat; work that outlives its lease is
unprotected from that point on.
"""

import logging
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from roadmap.lib.constants import DEFAULT_LEASE_MINUTES, LOCK_HOLDERS, LOCK_KEY
from roadmap.lib.store import Store
from roadmap.lib.timeutil import parse_timestamp, utc_now
from roadmap.lib.validate import validate_before_write

logger = logging.getLogger(__name__)


class LockContention(Exception):
    """The lock is held by someone else and has not expired."""

    def __init__(self, current: Optional["Lock"]):
        self.current = current
        if current is None:
            super().__init__("Lock is held")
        else:
            task = f" ({current.task})" if current.task else ""
            super().__init__(
                f"Lock is held by {current.holder}{task} until {current.timeout}"
            )


@dataclass
class Lock:
    """Lock document stored at .lock."""
    holder: str                 # worker, user, system
    started: str                # ISO timestamp
    timeout: str                # ISO timestamp; lock is free after this
    task: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now > parse_timestamp(self.timeout)

    @classmethod
    def from_dict(cls, data: dict) -> "Lock":
        return cls(
            holder=data["holder"],
            started=data["started"],
            timeout=data["timeout"],
            task=data.get("task"),
        )


class LockManager:
    """Acquire, release and inspect the project lock."""

    def __init__(
        self,
        store: Store,
        lease: timedelta = timedelta(minutes=DEFAULT_LEASE_MINUTES),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.lease = lease
        self.clock = clock

    def read(self) -> Optional[Lock]:
        """Return the stored lock as-is, expired or not. Never clears it."""
        data = self.store.read_structured(LOCK_KEY, "lock")
        if data is None:
            return None
        return Lock.from_dict(data)

    def acquire(self, holder: str, task: Optional[str] = None) -> bool:
        """Try to take the lock. Non-blocking.

        Returns:
            True if the lock was written for this caller, False if an
            unexpired lock exists (whoever holds it, including the caller)
        """
        if holder not in LOCK_HOLDERS:
            raise ValueError(f"Unknown lock holder: {holder}")

        now = self.clock()
        current = self.read()

        if current is not None and not current.is_expired(now):
            logger.debug(f"[LOCK] Busy: held by {current.holder} until {current.timeout}")
            return False

        lock = Lock(
            holder=holder,
            started=now.isoformat(),
            timeout=(now + self.lease).isoformat(),
            task=task,
        )
        data = asdict(lock)
        validate_before_write(data, "lock", LOCK_KEY)

        create_exclusive = getattr(self.store, "create_exclusive", None)
        if current is None and create_exclusive is not None:
            if not create_exclusive(LOCK_KEY, data):
                logger.debug("[LOCK] Lost race for empty lock slot")
                return False
        else:
            if current is not None:
                logger.info(
                    f"[LOCK] Taking over expired lock from {current.holder} "
                    f"(expired {current.timeout})"
                )
            self.store.write_structured(LOCK_KEY, data)

        logger.info(f"[LOCK] Acquired by {holder}" + (f" for {task}" if task else ""))
        return True

    def release(self) -> None:
        """Delete the lock. Silent when there is none."""
        if self.store.exists(LOCK_KEY):
            self.store.delete(LOCK_KEY)
            logger.info("[LOCK] Released")

    def status(self) -> str:
        """Diagnostic view of the lock slot: free, held or expired."""
        current = self.read()
        if current is None:
            return "free"
        if current.is_expired(self.clock()):
            return "expired"
        return "held"


@contextmanager
def exclusive(manager: LockManager, holder: str, task: Optional[str] = None) -> Iterator[Lock]:
    """
    Hold the lock for the duration of the block.

    Raises:
        LockContention: If an unexpired lock is already held

    Releases on exit only if this call acquired the lock, and only while the
    stored lock is still the one it wrote.
    """
    if not manager.acquire(holder, task):
        raise LockContention(manager.read())

    held = manager.read()
    try:
        yield held
    finally:
        current = manager.read()
        if current is not None and held is not None and current.started != held.started:
            logger.warning(
                f"[LOCK] Lease lost during {task or 'operation'}: "
                f"now held by {current.holder}, not releasing"
            )
        else:
            manager.release()


def project_lock(store: Store, lease: timedelta, task: Optional[str] = None,
                 holder: str = "user"):
    """exclusive() over a fresh LockManager, for commands that mutate."""
    return exclusive(LockManager(store, lease=lease), holder, task)
