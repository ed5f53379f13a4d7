"""Cooldown/dedup store.

After an alert for a (rule_id, server_id) pair is resolved or suppressed,
no new alert may be created for that pair until the rule's cooldown has
elapsed. Cooldowns gate creation only; an alert that is already open keeps
receiving value updates.

The store is process state. After a restart it is rebuilt from the close
times of persisted alerts with :meth:`CooldownStore.rebuild`.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime, timedelta

from alertspine.core.clock import Clock
from alertspine.core.logging import get_logger
from alertspine.models import AlertRule
from alertspine.storage.base import AlertStore

logger = get_logger(__name__)


class CooldownStore:
    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self._until: dict[tuple[str, str], datetime] = {}
        self._lock = threading.Lock()

    def can_fire(self, rule_id: str, server_id: str, now: datetime | None = None) -> bool:
        """True when no cooldown is running for the pair."""
        current = now or self.clock.now()
        with self._lock:
            until = self._until.get((rule_id, server_id))
            if until is None:
                return True
            if current >= until:
                del self._until[(rule_id, server_id)]
                return True
            return False

    def record_close(
        self, rule_id: str, server_id: str, at: datetime, cooldown: float
    ) -> None:
        """Start the cooldown for a pair whose alert closed at *at*."""
        if cooldown <= 0:
            with self._lock:
                self._until.pop((rule_id, server_id), None)
            return
        until = at + timedelta(seconds=cooldown)
        with self._lock:
            current = self._until.get((rule_id, server_id))
            if current is None or until > current:
                self._until[(rule_id, server_id)] = until
        logger.debug(
            "cooldown_started", rule_id=rule_id, server_id=server_id, until=until.isoformat()
        )

    def remaining(self, rule_id: str, server_id: str, now: datetime | None = None) -> float:
        """Seconds left on the pair's cooldown (0 when none)."""
        current = now or self.clock.now()
        with self._lock:
            until = self._until.get((rule_id, server_id))
        if until is None:
            return 0.0
        return max(0.0, (until - current).total_seconds())

    def rebuild(self, store: AlertStore, rules: Iterable[AlertRule]) -> int:
        """Re-create cooldowns from the last close time of each rule's pair."""
        restored = 0
        now = self.clock.now()
        for rule in rules:
            closed_at = store.last_closed_at(rule.id, rule.server_id)
            if closed_at is None or rule.cooldown <= 0:
                continue
            if closed_at + timedelta(seconds=rule.cooldown) <= now:
                continue
            self.record_close(rule.id, rule.server_id, closed_at, rule.cooldown)
            restored += 1
        if restored:
            logger.info("cooldowns_restored", count=restored)
        return restored

    def clear(self) -> None:
        with self._lock:
            self._until.clear()
