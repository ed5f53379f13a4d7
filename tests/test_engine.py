"""End-to-end engine tests: ingest, lifecycle, commands, queries."""

import threading
from datetime import timedelta

import pytest

from alertspine.commands import AcknowledgeAlert, ResolveAlert, SuppressAlert, build_command
from alertspine.core.errors import ConfigurationError, InvalidSampleError
from alertspine.core.locks import pair_key
from alertspine.models import (
    AlertFilter,
    AlertStatus,
    DecisionState,
    EventKind,
    Severity,
)

from conftest import START


def _feed(engine, clock, sample, value, count, step=60):
    """Ingest *count* samples of *value*, one every *step* seconds."""
    decisions = []
    for i in range(count):
        if i:
            clock.advance(step)
        decisions.extend(engine.ingest(sample(value)))
    return decisions


# ===========================================================================
# Breach to alert
# ===========================================================================


class TestSustainedBreach:
    """Sixteen minutes at 94.2 against a 15 minute duration."""

    @pytest.fixture
    def rule(self, engine, make_rule):
        return engine.rules.create_rule(
            make_rule(duration=900, cooldown=1800, severity=Severity.CRITICAL)
        )

    def test_one_alert_after_duration(self, engine, rule, clock, sample, slack_sender):
        decisions = _feed(engine, clock, sample, 94.2, 16)

        assert [d.state for d in decisions[:-1]] == [DecisionState.PENDING] * 15
        assert decisions[-1].state is DecisionState.BREACHING

        (alert,) = engine.list_alerts()
        assert alert.severity is Severity.CRITICAL
        assert alert.current_value == pytest.approx(94.2)
        assert alert.triggered_at == START + timedelta(seconds=900)
        assert [e.kind for e in slack_sender.events] == [EventKind.TRIGGERED]

    def test_recovery_auto_resolves(self, engine, rule, clock, sample):
        _feed(engine, clock, sample, 94.2, 16)

        clock.advance(60)
        (decision,) = engine.ingest(sample(85.0))

        assert decision.state is DecisionState.OK
        (alert,) = engine.list_alerts()
        assert alert.status is AlertStatus.RESOLVED
        assert alert.resolved_by == "system"

    def test_breach_while_open_updates_value(self, engine, rule, clock, sample):
        _feed(engine, clock, sample, 94.2, 16)
        clock.advance(60)
        engine.ingest(sample(97.5))

        (alert,) = engine.list_alerts()
        assert alert.current_value == pytest.approx(97.5)
        assert alert.triggered_at == START + timedelta(seconds=900)


class TestCooldown:
    @pytest.fixture
    def rule(self, engine, make_rule):
        return engine.rules.create_rule(make_rule(cooldown=1800))

    def test_rebreach_inside_cooldown_is_absorbed(self, engine, rule, clock, sample):
        engine.ingest(sample(95.0))
        (alert,) = engine.list_alerts()
        assert engine.resolve(alert.id, "alice").success

        clock.advance(600)
        engine.ingest(sample(96.0))

        assert engine.count_alerts() == 1

    def test_rebreach_after_cooldown_opens_new_alert(self, engine, rule, clock, sample):
        engine.ingest(sample(95.0))
        (alert,) = engine.list_alerts()
        engine.resolve(alert.id, "alice")

        clock.advance(1800)
        engine.ingest(sample(96.0))

        assert engine.count_alerts() == 2
        assert engine.count_alerts(AlertFilter(status=AlertStatus.ACTIVE)) == 1

    def test_reminder_after_cooldown_while_active(self, engine, rule, clock, sample, slack_sender):
        engine.ingest(sample(95.0))
        clock.advance(1800)
        engine.ingest(sample(96.0))

        assert [e.kind for e in slack_sender.events] == [EventKind.TRIGGERED, EventKind.REMINDER]

    def test_no_reminder_once_acknowledged(self, engine, rule, clock, sample, slack_sender):
        engine.ingest(sample(95.0))
        (alert,) = engine.list_alerts()
        engine.acknowledge(alert.id, "alice")

        clock.advance(1800)
        engine.ingest(sample(96.0))

        assert [e.kind for e in slack_sender.events] == [EventKind.TRIGGERED]


class TestGaps:
    def test_sweep_reports_no_data_and_keeps_alert_open(self, engine, make_rule, clock, sample):
        engine.rules.create_rule(make_rule())
        engine.ingest(sample(95.0))

        clock.advance(120)
        report = engine.tick()

        assert [d.state for d in report.gaps] == [DecisionState.NO_DATA]
        (alert,) = engine.list_alerts()
        assert alert.status is AlertStatus.ACTIVE

    def test_batch_with_gap_does_not_confirm_breach(self, engine, make_rule, sample):
        engine.rules.create_rule(make_rule(duration=120))

        decisions = engine.ingest_many(
            [sample(95.0, at=START), sample(95.0, at=START + timedelta(seconds=600))]
        )

        assert [d.state for d in decisions] == [DecisionState.PENDING] * 2
        assert engine.count_alerts() == 0

    def test_lagging_feed_still_alerts_across_ticks(self, engine, make_rule, clock, sample):
        engine.rules.create_rule(make_rule(duration=120))

        for _ in range(10):
            engine.ingest(sample(95.0, at=clock.now() - timedelta(seconds=90)))
            clock.advance(30)
            assert engine.tick().gaps == []

        assert engine.count_alerts() == 1

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_value_rejected(self, engine, make_rule, sample, value):
        engine.rules.create_rule(make_rule())
        engine.ingest(sample(95.0))

        with pytest.raises(InvalidSampleError):
            engine.ingest(sample(value))

        (alert,) = engine.list_alerts()
        assert alert.status is AlertStatus.ACTIVE


# ===========================================================================
# Commands
# ===========================================================================


class TestCommands:
    @pytest.fixture
    def alert(self, engine, make_rule, sample):
        engine.rules.create_rule(make_rule())
        engine.ingest(sample(95.0))
        (alert,) = engine.list_alerts()
        return alert

    def test_acknowledge(self, engine, alert):
        result = engine.acknowledge(alert.id, "alice")

        assert result.success
        assert result.data.status is AlertStatus.ACKNOWLEDGED
        assert result.data.acknowledged_by == "alice"

    def test_second_acknowledge_is_invalid_transition(self, engine, alert):
        engine.acknowledge(alert.id, "alice")
        result = engine.acknowledge(alert.id, "bob")

        assert not result.success
        assert result.error.code == "INVALID_TRANSITION"
        assert engine.get_alert(alert.id).acknowledged_by == "alice"

    def test_unknown_alert_is_not_found(self, engine):
        result = engine.resolve("missing", "alice")

        assert not result.success
        assert result.error.code == "NOT_FOUND"

    def test_suppress_stores_reason(self, engine, alert):
        result = engine.suppress(alert.id, "alice", "maintenance")

        assert result.data.status is AlertStatus.SUPPRESSED
        assert result.data.metadata["suppression_reason"] == "maintenance"

    def test_unsupported_command(self, engine):
        result = engine.execute(object())

        assert result.error.code == "UNSUPPORTED_COMMAND"

    def test_bulk_continues_past_failures(self, engine, alert):
        results = engine.bulk_execute(
            [
                AcknowledgeAlert(alert_id=alert.id, by="alice"),
                SuppressAlert(alert_id="missing", by="alice"),
                ResolveAlert(alert_id=alert.id, by="alice"),
            ]
        )

        assert [r.success for r in results] == [True, False, True]
        assert engine.get_alert(alert.id).status is AlertStatus.RESOLVED

    def test_result_to_dict(self, engine, alert):
        payload = engine.acknowledge(alert.id, "alice").to_dict()

        assert payload["success"] is True
        assert payload["data"]["status"] == "acknowledged"

    def test_build_command_maps_action_verbs(self):
        assert build_command("ack", "A1", "alice") == AcknowledgeAlert(alert_id="A1", by="alice")
        assert build_command("suppress", "A1", "alice", "noisy").reason == "noisy"

        with pytest.raises(ConfigurationError) as exc_info:
            build_command("snooze", "A1", "alice")
        assert exc_info.value.field_name == "action"


# ===========================================================================
# Queries
# ===========================================================================


class TestDeliveryHistory:
    def test_summarises_per_channel(self, engine, make_rule, clock, sample, undelivered):
        engine.rules.create_rule(make_rule(channel_ids=("ops-slack", "ops-hook")))
        engine.ingest(sample(95.0))
        (alert,) = engine.list_alerts()

        for step in (10, 20):
            clock.advance(step)
            engine.tick()

        summaries = {s.channel_id: s for s in engine.delivery_history(alert.id)}
        assert summaries["ops-slack"].sent == 1
        assert summaries["ops-hook"].attempts == 3
        assert summaries["ops-hook"].failed == 3
        assert summaries["ops-hook"].last_status == "failed"
        # slack delivered, so the event as a whole was not lost
        assert undelivered == []

    def test_resolve_does_not_recall_queued_retries(self, engine, make_rule, clock, sample):
        engine.rules.create_rule(make_rule(channel_ids=("ops-hook",)))
        engine.ingest(sample(95.0))
        (alert,) = engine.list_alerts()

        clock.advance(5)
        assert engine.resolve(alert.id, "alice").success
        for step in (5, 20):
            clock.advance(step)
            engine.tick()

        attempts = [n.attempt for n in engine.notifications(alert.id)]
        assert attempts == [0, 1, 2]

    def test_unknown_alert(self, engine):
        from alertspine.core.errors import AlertNotFoundError

        with pytest.raises(AlertNotFoundError):
            engine.delivery_history("missing")


class TestStats:
    def test_counts_and_resolution(self, engine, make_rule, clock, sample):
        engine.rules.create_rule(make_rule())
        engine.rules.create_rule(make_rule(id="cpu-high-2", severity=Severity.LOW))
        engine.ingest(sample(95.0))

        clock.advance(300)
        first = engine.list_alerts(AlertFilter(rule_id="cpu-high"))[0]
        engine.resolve(first.id, "alice")

        stats = engine.stats()

        assert stats.total == 2
        assert stats.open == 1
        assert stats.by_status["resolved"] == 1
        assert stats.by_severity["low"] == 1
        assert stats.resolution_rate == 0.5
        assert stats.mean_resolution_seconds == 300

    def test_since_excludes_older_alerts(self, engine, make_rule, clock, sample):
        engine.rules.create_rule(make_rule())
        engine.ingest(sample(95.0))

        assert engine.stats(since=START + timedelta(seconds=1)).total == 0


class TestPurge:
    def test_purges_closed_alerts_past_retention(self, engine, make_rule, clock, sample):
        engine.rules.create_rule(make_rule())
        engine.ingest(sample(95.0))
        (alert,) = engine.list_alerts()
        engine.resolve(alert.id, "alice")

        clock.advance(timedelta(days=engine.settings.retention_days).total_seconds() + 1)

        assert engine.purge_history() == 1
        assert engine.count_alerts() == 0

    def test_open_alerts_are_kept(self, engine, make_rule, clock, sample):
        engine.rules.create_rule(make_rule())
        engine.ingest(sample(95.0))
        clock.advance(timedelta(days=365).total_seconds())

        assert engine.purge_history() == 0


# ===========================================================================
# Rule changes and definitions
# ===========================================================================


class TestRuleChanges:
    def test_deleted_rule_orphans_open_alert(self, engine, make_rule, clock, sample):
        engine.rules.create_rule(make_rule())
        engine.ingest(sample(95.0))
        engine.rules.delete_rule("cpu-high")

        clock.advance(60)
        assert engine.ingest(sample(50.0)) == []
        (alert,) = engine.list_alerts()
        assert alert.status is AlertStatus.ACTIVE
        assert engine.resolve(alert.id, "alice").success

    def test_disabled_rule_stops_evaluating(self, engine, make_rule, sample):
        engine.rules.create_rule(make_rule())
        engine.rules.disable_rule("cpu-high")

        assert engine.ingest(sample(95.0)) == []
        assert engine.count_alerts() == 0


class TestLoadDefinitions:
    def test_applies_file(self, engine, tmp_path):
        path = tmp_path / "alerts.yaml"
        path.write_text(
            """
channels:
  - id: mem-hook
    type: webhook
    config: {url: "https://hooks.example.com/mem"}
rules:
  - id: mem-high
    server_id: srv-1
    metric: mem_usage
    condition: {operator: gt, aggregation: max, time_window: 120}
    threshold: 80
    channel_ids: [mem-hook, ops-slack]
"""
        )

        report = engine.load_definitions(path)

        assert report.channels_created == ["mem-hook"]
        assert report.rules_created == ["mem-high"]
        assert engine.rules.get_rule("mem-high").channel_ids == ("mem-hook", "ops-slack")

    def test_reloading_updates(self, engine, tmp_path):
        path = tmp_path / "alerts.yaml"
        path.write_text(
            "rules:\n"
            "  - id: disk\n"
            "    server_id: srv-1\n"
            "    metric: disk\n"
            "    condition: {operator: gte, time_window: 60}\n"
            "    threshold: 90\n"
        )
        engine.load_definitions(path)
        report = engine.load_definitions(path)

        assert report.rules_updated == ["disk"]


# ===========================================================================
# Concurrency
# ===========================================================================


class TestLockContention:
    def test_breach_dropped_when_pair_lock_never_frees(self, make_engine, make_rule, sample):
        engine = make_engine(lock_timeout_seconds=0.05, lock_retry_attempts=1)
        engine.rules.create_rule(make_rule())
        held = threading.Event()
        release = threading.Event()

        def holder():
            with engine.locks.hold(pair_key("cpu-high", "srv-1")):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)
        try:
            (decision,) = engine.ingest(sample(95.0))
        finally:
            release.set()
            thread.join()

        assert decision.state is DecisionState.BREACHING
        assert engine.count_alerts() == 0


# ===========================================================================
# Lifecycle
# ===========================================================================


class TestLifecycle:
    def test_restart_recovers_open_alerts(
        self, make_engine, make_rule, sample, two_level_policy
    ):
        first = make_engine()
        first.rules.create_rule(make_rule(escalation=two_level_policy))
        first.ingest(sample(95.0))
        first.stop()

        second = make_engine()
        report = second.start()

        assert report.open_alerts == 1
        assert report.timers_armed == 1
        assert second.health()["pending_timers"] == 1

    def test_health(self, engine, make_rule):
        engine.rules.create_rule(make_rule())
        engine.start()

        health = engine.health()

        assert health["started"] is True
        assert health["active_rules"] == 1
        assert health["open_alerts"] == 0
        assert health["backend"]["healthy"] is True
