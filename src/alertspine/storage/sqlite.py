"""SQLite-backed store.

Each table keeps the queryable columns (ids, status, timestamps) alongside
a JSON ``body`` holding the full record. Timestamps are ISO 8601 strings
in UTC so lexical comparison matches chronological order.

Tables:
    alertspine_rules            rule definitions (soft-deleted rows kept)
    alertspine_channels         notification channel definitions
    alertspine_alerts           alert records with lifecycle timestamps
    alertspine_notifications    delivery attempts, ordered by ``seq``
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from alertspine.core.logging import get_logger
from alertspine.models import (
    Alert,
    AlertFilter,
    AlertNotification,
    AlertRule,
    NotificationChannel,
)
from alertspine.models._serde import format_dt, parse_dt

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS alertspine_rules (
    id TEXT PRIMARY KEY,
    server_id TEXT NOT NULL,
    metric TEXT NOT NULL,
    enabled INTEGER NOT NULL,
    deleted INTEGER NOT NULL DEFAULT 0,
    body TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS alertspine_channels (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    enabled INTEGER NOT NULL,
    body TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS alertspine_alerts (
    id TEXT PRIMARY KEY,
    rule_id TEXT NOT NULL,
    server_id TEXT NOT NULL,
    status TEXT NOT NULL,
    severity TEXT NOT NULL,
    triggered_at TEXT NOT NULL,
    resolved_at TEXT,
    body TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_alertspine_alerts_pair
    ON alertspine_alerts (rule_id, server_id, status);

CREATE TABLE IF NOT EXISTS alertspine_notifications (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    alert_id TEXT NOT NULL,
    status TEXT NOT NULL,
    attempted_at TEXT NOT NULL,
    body TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_alertspine_notifications_alert
    ON alertspine_notifications (alert_id, seq);
"""

_OPEN = ("active", "acknowledged")


class SQLiteAlertStore:
    """Durable store on a single SQLite file.

    Args:
        path: Database file, or ``":memory:"``.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = str(path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        logger.debug("sqlite_store_opened", path=self.path)

    # ── Rules ─────────────────────────────────────────────────────

    def save_rule(self, rule: AlertRule) -> None:
        self._write(
            """
            INSERT INTO alertspine_rules (id, server_id, metric, enabled, deleted, body)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                server_id = excluded.server_id,
                metric = excluded.metric,
                enabled = excluded.enabled,
                deleted = excluded.deleted,
                body = excluded.body
            """,
            (
                rule.id,
                rule.server_id,
                rule.metric,
                int(rule.enabled),
                int(rule.deleted),
                json.dumps(rule.to_dict()),
            ),
        )

    def get_rule(self, rule_id: str) -> AlertRule | None:
        row = self._one("SELECT body FROM alertspine_rules WHERE id = ?", (rule_id,))
        return AlertRule.from_dict(json.loads(row["body"])) if row else None

    def list_rules(self, *, include_deleted: bool = False) -> list[AlertRule]:
        sql = "SELECT body FROM alertspine_rules"
        if not include_deleted:
            sql += " WHERE deleted = 0"
        rows = self._all(sql + " ORDER BY id", ())
        return [AlertRule.from_dict(json.loads(r["body"])) for r in rows]

    # ── Channels ──────────────────────────────────────────────────

    def save_channel(self, channel: NotificationChannel) -> None:
        self._write(
            """
            INSERT INTO alertspine_channels (id, type, enabled, body)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                type = excluded.type,
                enabled = excluded.enabled,
                body = excluded.body
            """,
            (
                channel.id,
                channel.type.value,
                int(channel.enabled),
                json.dumps(channel.to_dict()),
            ),
        )

    def get_channel(self, channel_id: str) -> NotificationChannel | None:
        row = self._one("SELECT body FROM alertspine_channels WHERE id = ?", (channel_id,))
        return NotificationChannel.from_dict(json.loads(row["body"])) if row else None

    def list_channels(self) -> list[NotificationChannel]:
        rows = self._all("SELECT body FROM alertspine_channels ORDER BY id", ())
        return [NotificationChannel.from_dict(json.loads(r["body"])) for r in rows]

    # ── Alerts ────────────────────────────────────────────────────

    def save_alert(self, alert: Alert) -> None:
        self._write(
            """
            INSERT INTO alertspine_alerts
                (id, rule_id, server_id, status, severity, triggered_at, resolved_at, body)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                resolved_at = excluded.resolved_at,
                body = excluded.body
            """,
            (
                alert.id,
                alert.rule_id,
                alert.server_id,
                alert.status.value,
                alert.severity.value,
                format_dt(alert.triggered_at),
                format_dt(alert.resolved_at),
                json.dumps(alert.to_dict()),
            ),
        )

    def get_alert(self, alert_id: str) -> Alert | None:
        row = self._one("SELECT body FROM alertspine_alerts WHERE id = ?", (alert_id,))
        return _alert(row) if row else None

    def find_open_alert(self, rule_id: str, server_id: str) -> Alert | None:
        row = self._one(
            """
            SELECT body FROM alertspine_alerts
            WHERE rule_id = ? AND server_id = ? AND status IN (?, ?)
            ORDER BY triggered_at DESC LIMIT 1
            """,
            (rule_id, server_id, *_OPEN),
        )
        return _alert(row) if row else None

    def list_alerts(self, alert_filter: AlertFilter) -> list[Alert]:
        where, params = _where(alert_filter)
        rows = self._all(
            f"SELECT body FROM alertspine_alerts WHERE {where} "
            "ORDER BY triggered_at DESC LIMIT ? OFFSET ?",
            (*params, alert_filter.limit, alert_filter.offset),
        )
        return [_alert(r) for r in rows]

    def count_alerts(self, alert_filter: AlertFilter) -> int:
        where, params = _where(alert_filter)
        row = self._one(f"SELECT COUNT(*) AS cnt FROM alertspine_alerts WHERE {where}", params)
        return int(row["cnt"]) if row else 0

    def list_open_alerts(self) -> list[Alert]:
        rows = self._all(
            "SELECT body FROM alertspine_alerts WHERE status IN (?, ?) ORDER BY triggered_at",
            _OPEN,
        )
        return [_alert(r) for r in rows]

    def alerts_triggered_since(self, since: datetime | None) -> list[Alert]:
        if since is None:
            rows = self._all("SELECT body FROM alertspine_alerts", ())
        else:
            rows = self._all(
                "SELECT body FROM alertspine_alerts WHERE triggered_at >= ?",
                (format_dt(since),),
            )
        return [_alert(r) for r in rows]

    def last_closed_at(self, rule_id: str, server_id: str) -> datetime | None:
        row = self._one(
            """
            SELECT MAX(resolved_at) AS closed FROM alertspine_alerts
            WHERE rule_id = ? AND server_id = ? AND status NOT IN (?, ?)
            """,
            (rule_id, server_id, *_OPEN),
        )
        return parse_dt(row["closed"]) if row and row["closed"] else None

    def purge_closed_alerts(self, closed_before: datetime) -> int:
        cutoff = format_dt(closed_before)
        with self._lock:
            self._conn.execute(
                """
                DELETE FROM alertspine_notifications WHERE alert_id IN (
                    SELECT id FROM alertspine_alerts
                    WHERE status NOT IN (?, ?) AND resolved_at < ?
                )
                """,
                (*_OPEN, cutoff),
            )
            cursor = self._conn.execute(
                "DELETE FROM alertspine_alerts WHERE status NOT IN (?, ?) AND resolved_at < ?",
                (*_OPEN, cutoff),
            )
            self._conn.commit()
        count = cursor.rowcount
        if count:
            logger.info("alerts_purged", count=count, before=cutoff)
        return count

    # ── Notifications ─────────────────────────────────────────────

    def save_notification(self, notification: AlertNotification) -> None:
        self._write(
            """
            INSERT INTO alertspine_notifications (id, alert_id, status, attempted_at, body)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                body = excluded.body
            """,
            (
                notification.id,
                notification.alert_id,
                notification.status.value,
                format_dt(notification.attempted_at),
                json.dumps(notification.to_dict()),
            ),
        )

    def list_notifications(self, alert_id: str) -> list[AlertNotification]:
        rows = self._all(
            "SELECT body FROM alertspine_notifications WHERE alert_id = ? ORDER BY seq",
            (alert_id,),
        )
        return [AlertNotification.from_dict(json.loads(r["body"])) for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ── Helpers ───────────────────────────────────────────────────

    def _write(self, sql: str, params: tuple[Any, ...]) -> None:
        with self._lock:
            self._conn.execute(sql, params)
            self._conn.commit()

    def _one(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def _all(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()


def _alert(row: sqlite3.Row) -> Alert:
    return Alert.from_dict(json.loads(row["body"]))


def _where(alert_filter: AlertFilter) -> tuple[str, tuple[Any, ...]]:
    clauses: list[str] = []
    params: list[Any] = []
    if alert_filter.server_id is not None:
        clauses.append("server_id = ?")
        params.append(alert_filter.server_id)
    if alert_filter.status is not None:
        clauses.append("status = ?")
        params.append(alert_filter.status.value)
    if alert_filter.severity is not None:
        clauses.append("severity = ?")
        params.append(alert_filter.severity.value)
    if alert_filter.rule_id is not None:
        clauses.append("rule_id = ?")
        params.append(alert_filter.rule_id)
    return (" AND ".join(clauses) or "1=1"), tuple(params)
