"""Keyed lock manager.

Serializes work per key inside one engine process. Two kinds of keys are
used:

    pair:<rule_id>:<server_id>   one-open-alert invariant and cooldowns
    alert:<alert_id>             lifecycle transitions of a single alert

Locks are re-entrant for the owning thread and are created on demand;
an entry is dropped once nobody holds or waits for it. When both kinds
are needed the pair lock is always acquired first.

Example:
    >>> locks = KeyedLockManager(default_timeout=2.0)
    >>> with locks.hold(pair_key("rule-1", "srv-1")):
    ...     pass
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from alertspine.core.errors import LockTimeoutError
from alertspine.core.logging import get_logger

logger = get_logger(__name__)


def pair_key(rule_id: str, server_id: str) -> str:
    return f"pair:{rule_id}:{server_id}"


def alert_key(alert_id: str) -> str:
    return f"alert:{alert_id}"


@dataclass
class _LockEntry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    refs: int = 0
    owner: int | None = None
    depth: int = 0
    locked_at: datetime | None = None


class KeyedLockManager:
    """In-process lock table keyed by string.

    Args:
        default_timeout: Seconds to wait in :meth:`hold` when no timeout
            is passed explicitly.
        instance_id: Identifier reported by :meth:`list_active_locks`.
    """

    def __init__(self, default_timeout: float = 5.0, instance_id: str | None = None) -> None:
        self.default_timeout = default_timeout
        self.instance_id = instance_id or str(uuid4())
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    def acquire(self, key: str, timeout: float | None = None) -> bool:
        """Acquire the lock for *key*.

        Returns:
            True if acquired, False if the timeout elapsed first.
        """
        with self._guard:
            entry = self._entries.setdefault(key, _LockEntry())
            entry.refs += 1

        wait = -1 if timeout is None else timeout
        if not entry.lock.acquire(timeout=wait):
            with self._guard:
                entry.refs -= 1
                self._discard_if_idle(key, entry)
            logger.debug("lock_acquire_timeout", lock_key=key, timeout=timeout)
            return False

        entry.owner = threading.get_ident()
        entry.depth += 1
        if entry.depth == 1:
            entry.locked_at = datetime.now(UTC)
        return True

    def release(self, key: str) -> bool:
        """Release one level of the lock held by the calling thread."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None or entry.owner != threading.get_ident():
                return False
            entry.depth -= 1
            if entry.depth == 0:
                entry.owner = None
                entry.locked_at = None
            entry.lock.release()
            entry.refs -= 1
            self._discard_if_idle(key, entry)
            return True

    @contextmanager
    def hold(self, key: str, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for the duration of the block.

        Raises:
            LockTimeoutError: if the lock cannot be acquired in time.
        """
        wait = self.default_timeout if timeout is None else timeout
        if not self.acquire(key, wait):
            raise LockTimeoutError(key, wait)
        try:
            yield
        finally:
            self.release(key)

    def is_locked(self, key: str) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            return entry is not None and entry.depth > 0

    def list_active_locks(self) -> list[dict]:
        """List currently held locks, oldest first."""
        with self._guard:
            held = [
                {
                    "lock_key": key,
                    "locked_by": self.instance_id,
                    "thread": entry.owner,
                    "locked_at": entry.locked_at.isoformat() if entry.locked_at else None,
                }
                for key, entry in self._entries.items()
                if entry.depth > 0
            ]
        return sorted(held, key=lambda row: row["locked_at"] or "")

    def _discard_if_idle(self, key: str, entry: _LockEntry) -> None:
        if entry.refs == 0 and entry.depth == 0 and self._entries.get(key) is entry:
            del self._entries[key]
