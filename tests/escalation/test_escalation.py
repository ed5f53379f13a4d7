"""Tests for escalation timing, cancellation and restart recovery."""

import threading
from datetime import timedelta

import pytest

from alertspine.core.locks import alert_key
from alertspine.escalation import cumulative_deadline, timer_key
from alertspine.models import AlertStatus, EscalationLevel, EscalationPolicy, EventKind

from conftest import START


@pytest.fixture
def escalating_engine(engine, make_rule, two_level_policy):
    engine.rules.create_rule(make_rule(escalation=two_level_policy))
    return engine


def _open(engine, sample):
    engine.ingest(sample(95.0))
    (alert,) = engine.list_alerts()
    return alert


class TestCumulativeDeadline:
    def test_deadlines_sum_level_timeouts(self, two_level_policy):
        assert cumulative_deadline(START, two_level_policy, 1) == START + timedelta(seconds=900)
        assert cumulative_deadline(START, two_level_policy, 2) == START + timedelta(seconds=2700)

    def test_level_without_timeout_uses_interval(self):
        policy = EscalationPolicy(
            levels=(EscalationLevel(level=1), EscalationLevel(level=2)),
            max_escalations=2,
            escalation_interval=600,
        )
        assert cumulative_deadline(START, policy, 2) == START + timedelta(seconds=1200)


class TestReachableLevels:
    def test_unset_limit_reaches_every_level(self, two_level_policy):
        policy = EscalationPolicy(levels=two_level_policy.levels)
        assert policy.reachable_levels == 2

    def test_zero_limit_disables_escalation(self, two_level_policy):
        policy = EscalationPolicy(levels=two_level_policy.levels, max_escalations=0)
        assert policy.reachable_levels == 0

    def test_round_trip_keeps_unset_limit(self, two_level_policy):
        policy = EscalationPolicy(levels=two_level_policy.levels)
        assert EscalationPolicy.from_dict(policy.to_dict()).max_escalations is None

    def test_python_built_policy_escalates(self, engine, make_rule, sample, clock, two_level_policy):
        engine.rules.create_rule(
            make_rule(escalation=EscalationPolicy(levels=two_level_policy.levels))
        )
        alert = _open(engine, sample)

        clock.advance(900)
        engine.tick()

        assert engine.get_alert(alert.id).escalation_level == 1


class TestEscalationTiming:
    def test_reaches_level_two_after_2700s_then_stops(
        self, escalating_engine, sample, clock, email_sender, slack_sender
    ):
        alert = _open(escalating_engine, sample)

        clock.advance(899)
        escalating_engine.tick()
        assert escalating_engine.get_alert(alert.id).escalation_level == 0

        clock.advance(1)
        escalating_engine.tick()
        assert escalating_engine.get_alert(alert.id).escalation_level == 1
        assert [e.kind for e in email_sender.events] == [EventKind.ESCALATED]

        clock.advance(1800)
        escalating_engine.tick()
        assert escalating_engine.get_alert(alert.id).escalation_level == 2
        # level 2 has no channels of its own: the rule's channels are used
        level_two = slack_sender.events[-1]
        assert level_two.kind is EventKind.ESCALATED
        assert level_two.escalation_level == 2
        assert level_two.users == ("oncall-lead",)

        clock.advance(10_000)
        escalating_engine.tick()
        assert escalating_engine.get_alert(alert.id).escalation_level == 2
        assert escalating_engine.escalation.deadline(alert.id) is None

    def test_acknowledge_before_first_timeout_prevents_escalation(
        self, escalating_engine, sample, clock, email_sender
    ):
        alert = _open(escalating_engine, sample)
        clock.advance(500)
        assert escalating_engine.acknowledge(alert.id, "alice").success

        clock.advance(5000)
        escalating_engine.tick()

        current = escalating_engine.get_alert(alert.id)
        assert current.escalation_level == 0
        assert current.status is AlertStatus.ACKNOWLEDGED
        assert email_sender.events == []
        assert timer_key(alert.id) not in escalating_engine.timers.pending()

    def test_no_escalation_after_resolve(self, escalating_engine, sample, clock, email_sender):
        alert = _open(escalating_engine, sample)
        clock.advance(800)
        escalating_engine.resolve(alert.id, "ops")

        clock.advance(5000)
        escalating_engine.tick()

        assert email_sender.events == []

    def test_in_flight_timer_after_resolve_does_nothing(
        self, escalating_engine, sample, clock, email_sender
    ):
        alert = _open(escalating_engine, sample)
        # grab the armed callback before resolution cancels it
        job = escalating_engine.timers._live[timer_key(alert.id)]
        escalating_engine.resolve(alert.id, "ops")

        clock.advance(900)
        job.callback()

        assert email_sender.events == []
        assert escalating_engine.get_alert(alert.id).escalation_level == 0

    def test_max_escalations_limits_levels(self, engine, make_rule, sample, clock, two_level_policy):
        policy = EscalationPolicy(levels=two_level_policy.levels, max_escalations=1)
        engine.rules.create_rule(make_rule(escalation=policy))
        alert = _open(engine, sample)

        clock.advance(10_000)
        engine.tick()

        assert engine.get_alert(alert.id).escalation_level == 1


class TestEscalationRecovery:
    def test_restart_rearms_next_level(
        self, escalating_engine, make_engine, sample, clock, email_sender
    ):
        alert = _open(escalating_engine, sample)
        clock.advance(900)
        escalating_engine.tick()
        assert escalating_engine.get_alert(alert.id).escalation_level == 1

        restarted = make_engine()
        report = restarted.start()

        assert report.open_alerts == 1
        assert report.timers_armed == 1
        assert restarted.escalation.deadline(alert.id) == START + timedelta(seconds=2700)

        clock.advance(1800)
        restarted.tick()
        assert restarted.get_alert(alert.id).escalation_level == 2


class TestNotificationOrdering:
    def test_history_is_ordered_by_level(self, escalating_engine, sample, clock):
        alert = _open(escalating_engine, sample)
        clock.advance(900)
        escalating_engine.tick()
        clock.advance(1800)
        escalating_engine.tick()

        levels = [n.escalation_level for n in escalating_engine.notifications(alert.id)]

        assert levels == sorted(levels)
        assert set(levels) == {0, 1, 2}


class TestLockContention:
    def test_contended_fire_is_rearmed_for_same_level(
        self, make_engine, make_rule, two_level_policy, sample, clock, email_sender
    ):
        engine = make_engine(lock_timeout_seconds=0.05)
        engine.rules.create_rule(make_rule(escalation=two_level_policy))
        alert = _open(engine, sample)
        held = threading.Event()
        release = threading.Event()

        def holder():
            with engine.locks.hold(alert_key(alert.id)):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)
        try:
            clock.advance(900)
            engine.tick()
        finally:
            release.set()
            thread.join()

        assert engine.get_alert(alert.id).escalation_level == 0
        retry_at = engine.escalation.deadline(alert.id)
        assert retry_at is not None
        assert retry_at > clock.now()

        clock.advance((retry_at - clock.now()).total_seconds())
        engine.tick()

        assert engine.get_alert(alert.id).escalation_level == 1
        assert [e.kind for e in email_sender.events] == [EventKind.ESCALATED]
        # level 2 still counts from the original level 1 deadline
        assert engine.escalation.deadline(alert.id) == START + timedelta(seconds=2700)
