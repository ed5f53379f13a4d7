"""
Rule evaluation.

Turns a stream of metric samples into breach decisions. Each
(rule_id, server_id) pair owns a sliding window; every sample is added to
its window, the window is aggregated, and the aggregate is compared with
the rule threshold. A breach is only confirmed once the comparison has
held continuously for the rule's ``duration``.

Decision states:
    ok         aggregate present, condition not satisfied (recovery)
    pending    condition satisfied, duration not yet reached
    breaching  condition satisfied for at least ``duration`` seconds
    no_data    window empty; never a breach, resets the debounce

Two time bases are kept apart. Window contents and the debounce run on
sample timestamps (feed time): a gap longer than ``time_window`` between
consecutive samples restarts the debounce. Idle expiry in :meth:`sweep`
runs on the engine clock: a window is emptied once no sample has arrived
for longer than ``time_window``, however far the feed lags the clock.

Example:
    >>> evaluator = RuleEvaluator(clock, tolerance=30)
    >>> decision = evaluator.evaluate(rule, sample)
    >>> decision.confirmed
    True
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from alertspine.core.clock import Clock, seconds_between
from alertspine.core.errors import ErrorContext, InvalidSampleError
from alertspine.core.logging import get_logger
from alertspine.evaluation.window import SlidingWindow
from alertspine.models import AlertRule, BreachDecision, DecisionState, MetricSample

logger = get_logger(__name__)


def _rule_version(rule: AlertRule) -> tuple[Any, ...]:
    return (rule.updated_at, rule.condition, rule.threshold, rule.duration)


@dataclass
class _PairState:
    window: SlidingWindow
    version: tuple[Any, ...]
    breach_since: datetime | None = None
    # engine-clock time the last accepted sample arrived
    arrived_at: datetime | None = None


class RuleEvaluator:
    """Sliding-window threshold evaluation per (rule, server).

    Args:
        clock: Time source used by :meth:`sweep` when no time is passed.
        tolerance: Seconds an out-of-order sample may lag behind the
            newest sample in its window and still be accepted.
    """

    def __init__(self, clock: Clock, tolerance: float = 0.0) -> None:
        self.clock = clock
        self.tolerance = tolerance
        self._states: dict[tuple[str, str], _PairState] = {}
        self._lock = threading.RLock()

    def evaluate(self, rule: AlertRule, sample: MetricSample) -> BreachDecision:
        """Add *sample* to the rule's window and decide.

        Raises:
            InvalidSampleError: the sample is for another metric or server,
                or the rule is disabled.
        """
        self._check_sample(rule, sample)

        with self._lock:
            state = self._state_for(rule)
            previous = state.window.latest
            if previous is not None:
                gap = seconds_between(previous, sample.timestamp)
                if gap > rule.condition.time_window:
                    state.window.clear()
                    state.breach_since = None
                    logger.debug(
                        "evaluation_gap",
                        rule_id=rule.id,
                        server_id=rule.server_id,
                        gap_seconds=gap,
                    )
            if state.window.add(sample.timestamp, sample.value):
                state.arrived_at = self.clock.now()
            else:
                logger.info(
                    "sample_dropped_out_of_order",
                    rule_id=rule.id,
                    server_id=rule.server_id,
                    sample_time=sample.timestamp.isoformat(),
                    latest=state.window.latest.isoformat() if state.window.latest else None,
                )
            at = state.window.latest or sample.timestamp
            state.window.evict(at)
            return self._decide(rule, state, at)

    def sweep(self, rules: list[AlertRule], now: datetime | None = None) -> list[BreachDecision]:
        """Empty the windows of *rules* whose feed has gone quiet.

        *now* is engine-clock time and is compared with when each pair's
        last sample arrived, never with sample timestamps. Returns a
        ``no_data`` decision for every window emptied by this sweep.
        """
        at = now or self.clock.now()
        decisions: list[BreachDecision] = []
        with self._lock:
            for rule in rules:
                state = self._states.get((rule.id, rule.server_id))
                if state is None or not state.window or state.arrived_at is None:
                    continue
                if seconds_between(state.arrived_at, at) > rule.condition.time_window:
                    state.window.clear()
                    state.breach_since = None
                    decisions.append(
                        BreachDecision(
                            rule_id=rule.id,
                            server_id=rule.server_id,
                            state=DecisionState.NO_DATA,
                            evaluated_at=at,
                        )
                    )
                    logger.debug("evaluation_gap", rule_id=rule.id, server_id=rule.server_id)
        return decisions

    def reset(self, rule_id: str) -> int:
        """Forget all window state for *rule_id*. Returns pairs dropped."""
        with self._lock:
            keys = [key for key in self._states if key[0] == rule_id]
            for key in keys:
                del self._states[key]
        return len(keys)

    def window_size(self, rule_id: str, server_id: str) -> int:
        with self._lock:
            state = self._states.get((rule_id, server_id))
            return len(state.window) if state else 0

    def _check_sample(self, rule: AlertRule, sample: MetricSample) -> None:
        context = ErrorContext(rule_id=rule.id, server_id=sample.server_id)
        if not rule.enabled or rule.deleted:
            raise InvalidSampleError(f"Rule {rule.id} is disabled", context=context)
        if sample.metric != rule.metric:
            raise InvalidSampleError(
                f"Sample metric {sample.metric!r} does not match rule metric {rule.metric!r}",
                context=context,
            )
        if sample.server_id != rule.server_id:
            raise InvalidSampleError(
                f"Sample server {sample.server_id!r} does not match rule server "
                f"{rule.server_id!r}",
                context=context,
            )

    def _state_for(self, rule: AlertRule) -> _PairState:
        key = (rule.id, rule.server_id)
        version = _rule_version(rule)
        state = self._states.get(key)
        if state is None or state.version != version:
            if state is not None:
                logger.info("evaluation_state_reset", rule_id=rule.id, server_id=rule.server_id)
            state = _PairState(
                window=SlidingWindow(rule.condition.time_window, self.tolerance),
                version=version,
            )
            self._states[key] = state
        return state

    def _decide(self, rule: AlertRule, state: _PairState, at: datetime) -> BreachDecision:
        value = state.window.aggregate(rule.condition.aggregation)
        if value is None:
            state.breach_since = None
            decision = DecisionState.NO_DATA
        elif rule.condition.operator.compare(value, rule.threshold):
            if state.breach_since is None:
                state.breach_since = at
            held = seconds_between(state.breach_since, at)
            decision = DecisionState.BREACHING if held >= rule.duration else DecisionState.PENDING
        else:
            state.breach_since = None
            decision = DecisionState.OK

        return BreachDecision(
            rule_id=rule.id,
            server_id=rule.server_id,
            state=decision,
            evaluated_at=at,
            current_value=value,
        )
