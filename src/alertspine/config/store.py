"""
Rule and channel registry.

``RuleStore`` owns rule, escalation-policy and channel definitions. It
validates every write, stamps ``created_at`` / ``updated_at`` from the
engine clock and persists through the :class:`AlertStore`. The evaluator
resets a rule's window state whenever ``updated_at`` changes.

Deleting a rule is a soft delete: the rule is disabled and flagged
``deleted``. Alerts it already opened keep running their lifecycle.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from alertspine.config.validation import validate_channel, validate_rule
from alertspine.core.clock import Clock
from alertspine.core.errors import (
    ChannelNotFoundError,
    ConfigurationError,
    ErrorContext,
    RuleNotFoundError,
)
from alertspine.core.logging import get_logger
from alertspine.models import AlertRule, NotificationChannel
from alertspine.storage.base import AlertStore

logger = get_logger(__name__)

_IMMUTABLE_RULE_FIELDS = frozenset({"id", "created_at", "updated_at", "deleted"})


@dataclass
class ApplyReport:
    """Outcome of applying a batch of definitions."""

    channels_created: list[str] = field(default_factory=list)
    channels_updated: list[str] = field(default_factory=list)
    rules_created: list[str] = field(default_factory=list)
    rules_updated: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "channels_created": self.channels_created,
            "channels_updated": self.channels_updated,
            "rules_created": self.rules_created,
            "rules_updated": self.rules_updated,
        }


class RuleStore:
    """CRUD over rule and channel definitions.

    Keeps an index of live rules by (server_id, metric) so sample ingest
    does not scan every rule.
    """

    def __init__(self, store: AlertStore, clock: Clock) -> None:
        self.store = store
        self.clock = clock
        self._lock = threading.RLock()
        self._index: dict[tuple[str, str], dict[str, AlertRule]] = {}
        for rule in store.list_rules():
            self._reindex(rule)

    # ── Rules ───────────────────────────────────────────────────

    def create_rule(self, rule: AlertRule) -> AlertRule:
        with self._lock:
            if self.store.get_rule(rule.id) is not None:
                raise ConfigurationError(
                    f"Rule {rule.id} already exists",
                    field_name="id",
                    context=ErrorContext(rule_id=rule.id),
                )
            validate_rule(rule, self._channel_ids())
            now = self.clock.now()
            created = rule.with_changes(created_at=now, updated_at=now, deleted=False)
            self.store.save_rule(created)
            self._reindex(created)
        logger.info("rule_created", rule_id=rule.id, server_id=rule.server_id, metric=rule.metric)
        return created

    def update_rule(self, rule_id: str, **changes: Any) -> AlertRule:
        """Apply field changes to a rule and bump ``updated_at``."""
        forbidden = _IMMUTABLE_RULE_FIELDS.intersection(changes)
        if forbidden:
            raise ConfigurationError(
                f"Cannot change {', '.join(sorted(forbidden))} on rule {rule_id}",
                field_name=sorted(forbidden)[0],
            )
        with self._lock:
            current = self.get_rule(rule_id)
            updated = current.with_changes(**changes, updated_at=self.clock.now())
            validate_rule(updated, self._channel_ids())
            self.store.save_rule(updated)
            self._reindex(updated, previous=current)
        logger.info("rule_updated", rule_id=rule_id, fields=sorted(changes))
        return updated

    def replace_rule(self, rule: AlertRule) -> AlertRule:
        """Overwrite an existing rule's definition, keeping its identity fields."""
        with self._lock:
            current = self.get_rule(rule.id)
            updated = rule.with_changes(
                created_at=current.created_at, updated_at=self.clock.now(), deleted=False
            )
            validate_rule(updated, self._channel_ids())
            self.store.save_rule(updated)
            self._reindex(updated, previous=current)
        logger.info("rule_replaced", rule_id=rule.id)
        return updated

    def disable_rule(self, rule_id: str) -> AlertRule:
        """Stop evaluating a rule. Open alerts are left alone."""
        return self.update_rule(rule_id, enabled=False)

    def enable_rule(self, rule_id: str) -> AlertRule:
        return self.update_rule(rule_id, enabled=True)

    def delete_rule(self, rule_id: str) -> AlertRule:
        """Soft delete: disable and flag the rule; its open alerts are orphaned."""
        with self._lock:
            current = self.get_rule(rule_id)
            deleted = current.with_changes(enabled=False, deleted=True, updated_at=self.clock.now())
            self.store.save_rule(deleted)
            self._reindex(deleted, previous=current)
        logger.info("rule_deleted", rule_id=rule_id)
        return deleted

    def get_rule(self, rule_id: str) -> AlertRule:
        rule = self.store.get_rule(rule_id)
        if rule is None or rule.deleted:
            raise RuleNotFoundError(rule_id)
        return rule

    def list_rules(
        self, *, server_id: str | None = None, enabled_only: bool = False
    ) -> list[AlertRule]:
        rules = self.store.list_rules()
        if server_id is not None:
            rules = [rule for rule in rules if rule.server_id == server_id]
        if enabled_only:
            rules = [rule for rule in rules if rule.enabled]
        return rules

    def rules_for(self, server_id: str, metric: str) -> list[AlertRule]:
        """Enabled rules watching *metric* on *server_id*."""
        with self._lock:
            return list(self._index.get((server_id, metric), {}).values())

    def active_rules(self) -> list[AlertRule]:
        with self._lock:
            return [rule for bucket in self._index.values() for rule in bucket.values()]

    def _reindex(self, rule: AlertRule, previous: AlertRule | None = None) -> None:
        if previous is not None:
            bucket = self._index.get((previous.server_id, previous.metric))
            if bucket is not None:
                bucket.pop(previous.id, None)
                if not bucket:
                    del self._index[(previous.server_id, previous.metric)]
        if rule.enabled and not rule.deleted:
            self._index.setdefault((rule.server_id, rule.metric), {})[rule.id] = rule

    # ── Channels ────────────────────────────────────────────────

    def create_channel(self, channel: NotificationChannel) -> NotificationChannel:
        with self._lock:
            if self.store.get_channel(channel.id) is not None:
                raise ConfigurationError(
                    f"Channel {channel.id} already exists",
                    field_name="id",
                    context=ErrorContext(channel_id=channel.id),
                )
            validate_channel(channel)
            self.store.save_channel(channel)
        logger.info("channel_created", channel_id=channel.id, channel_type=channel.type.value)
        return channel

    def update_channel(self, channel_id: str, **changes: Any) -> NotificationChannel:
        if "id" in changes:
            raise ConfigurationError("Cannot change a channel id", field_name="id")
        with self._lock:
            current = self.get_channel(channel_id)
            updated = replace(current, **changes)
            validate_channel(updated)
            self.store.save_channel(updated)
        logger.info("channel_updated", channel_id=channel_id, fields=sorted(changes))
        return updated

    def replace_channel(self, channel: NotificationChannel) -> NotificationChannel:
        with self._lock:
            self.get_channel(channel.id)
            validate_channel(channel)
            self.store.save_channel(channel)
        logger.info("channel_replaced", channel_id=channel.id)
        return channel

    def get_channel(self, channel_id: str) -> NotificationChannel:
        channel = self.store.get_channel(channel_id)
        if channel is None:
            raise ChannelNotFoundError(channel_id)
        return channel

    def list_channels(self) -> list[NotificationChannel]:
        return self.store.list_channels()

    def resolve_channels(self, channel_ids: Iterable[str]) -> list[NotificationChannel]:
        """Look up channels in order, skipping ids that no longer exist."""
        channels = []
        seen: set[str] = set()
        for channel_id in channel_ids:
            if channel_id in seen:
                continue
            seen.add(channel_id)
            channel = self.store.get_channel(channel_id)
            if channel is None:
                logger.warning("channel_missing", channel_id=channel_id)
                continue
            channels.append(channel)
        return channels

    def _channel_ids(self) -> set[str]:
        return {channel.id for channel in self.store.list_channels()}

    # ── Bulk ────────────────────────────────────────────────────

    def apply(
        self, channels: Iterable[NotificationChannel], rules: Iterable[AlertRule]
    ) -> ApplyReport:
        """Create or replace channels, then rules."""
        report = ApplyReport()
        with self._lock:
            for channel in channels:
                if self.store.get_channel(channel.id) is None:
                    self.create_channel(channel)
                    report.channels_created.append(channel.id)
                else:
                    self.replace_channel(channel)
                    report.channels_updated.append(channel.id)
            for rule in rules:
                existing = self.store.get_rule(rule.id)
                if existing is None:
                    self.create_rule(rule)
                    report.rules_created.append(rule.id)
                else:
                    if existing.deleted:
                        # a deleted id is reused by redefining it
                        self.store.save_rule(existing.with_changes(deleted=False))
                    self.replace_rule(rule)
                    report.rules_updated.append(rule.id)
        return report

