"""
Notification dispatcher.

Sends one event to a set of channels. Channels are independent: each gets
its own sends on the executor and its own retry timers, and one channel
failing never blocks another.

Per channel:
    attempt 0 is sent immediately; after a failure, retry n (1-based) is
    armed on the timer queue ``retry_delay * backoff_multiplier ** (n - 1)``
    seconds later, up to ``max_retries`` retries.

Every attempt is recorded as an :class:`AlertNotification`: saved as
``pending`` when issued, then updated to ``sent`` or ``failed``. Disabled
channels are skipped and leave no record.

Delivery problems never raise into the caller. An event that no channel
delivered is logged as a warning and passed to ``on_undelivered``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future
from datetime import timedelta
from functools import partial

from alertspine.core.clock import Clock, generate_ulid
from alertspine.core.errors import ChannelDeliveryFailure, ErrorContext
from alertspine.core.logging import get_logger
from alertspine.core.retry import ExponentialBackoff
from alertspine.models import AlertNotification, NotificationChannel, NotificationStatus
from alertspine.notifications.protocol import (
    DeliveryResult,
    DispatchResult,
    EventDispatch,
    NotificationEvent,
)
from alertspine.notifications.registry import SenderRegistry
from alertspine.scheduling.timers import TimerQueue
from alertspine.storage.base import AlertStore

logger = get_logger(__name__)

UndeliveredHook = Callable[[EventDispatch], None]


def retry_key(notification_id: str) -> str:
    return f"retry:{notification_id}"


class NotificationDispatcher:
    """Fan-out delivery with per-channel retry and attempt history.

    Args:
        store: Receives one AlertNotification per attempt.
        registry: Maps channel types to senders.
        timers: Queue on which retries are armed.
        clock: Time source for records and retry deadlines.
        executor: Runs sender calls off the caller's thread.
        on_undelivered: Called once when every attempted channel of an
            event has given up.
    """

    def __init__(
        self,
        store: AlertStore,
        registry: SenderRegistry,
        timers: TimerQueue,
        clock: Clock,
        executor: Executor,
        on_undelivered: UndeliveredHook | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.timers = timers
        self.clock = clock
        self.executor = executor
        self.on_undelivered = on_undelivered

    def dispatch(
        self, channels: Iterable[NotificationChannel], event: NotificationEvent
    ) -> EventDispatch:
        """Send *event* to every channel; returns without waiting for delivery."""
        outcome = EventDispatch(event=event)
        channels = list(channels)
        remaining = len(channels)
        guard = threading.Lock()

        def _channel_done(result: DispatchResult) -> None:
            nonlocal remaining
            with guard:
                remaining -= 1
                finished = remaining == 0
            if finished:
                self._event_finished(outcome)

        # register every result first; inline sends complete synchronously
        results = [
            DispatchResult(channel.id, channel.type, on_done=_channel_done) for channel in channels
        ]
        outcome.results.extend(results)
        for channel, result in zip(channels, results, strict=True):
            self._start(channel, event, result)
        return outcome

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DispatchResult:
        """Send *event* to a single channel."""
        result = DispatchResult(channel.id, channel.type)
        self._start(channel, event, result)
        return result

    def _start(
        self, channel: NotificationChannel, event: NotificationEvent, result: DispatchResult
    ) -> None:
        if not channel.enabled:
            logger.debug("channel_skipped_disabled", channel_id=channel.id, alert_id=event.alert.id)
            result.mark_skipped()
            return
        self._attempt(channel, event, result, 0)

    def _attempt(
        self,
        channel: NotificationChannel,
        event: NotificationEvent,
        result: DispatchResult,
        attempt: int,
    ) -> None:
        now = self.clock.now()
        record = AlertNotification(
            id=generate_ulid(now),
            alert_id=event.alert.id,
            channel_id=channel.id,
            channel_type=channel.type,
            kind=event.kind,
            attempt=attempt,
            attempted_at=now,
            escalation_level=event.escalation_level,
        )
        self.store.save_notification(record)
        result.attempts += 1

        future = self.executor.submit(self._deliver, channel, event)
        future.add_done_callback(partial(self._attempt_done, channel, event, result, record))

    def _deliver(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        sender = self.registry.get(channel.type)
        outcome = sender.send(channel, event)
        if not outcome.success:
            if outcome.error is not None:
                raise outcome.error
            raise ChannelDeliveryFailure(
                outcome.message or "delivery failed", context=ErrorContext(channel_id=channel.id)
            )
        return outcome

    def _attempt_done(
        self,
        channel: NotificationChannel,
        event: NotificationEvent,
        result: DispatchResult,
        record: AlertNotification,
        future: Future,
    ) -> None:
        now = self.clock.now()
        error = future.exception()
        record.completed_at = now

        if error is None:
            record.status = NotificationStatus.SENT
            self.store.save_notification(record)
            logger.info(
                "notification_sent",
                alert_id=record.alert_id,
                channel_id=channel.id,
                kind=record.kind.value,
                attempt=record.attempt,
            )
            result.complete(True, now)
            return

        record.status = NotificationStatus.FAILED
        record.error = str(error)
        self.store.save_notification(record)

        strategy = ExponentialBackoff.from_policy(channel.retry_policy)
        if strategy.should_retry(record.attempt, error):
            delay = strategy.next_delay(record.attempt)
            self.timers.schedule(
                retry_key(record.id),
                now + timedelta(seconds=delay),
                partial(self._attempt, channel, event, result, record.attempt + 1),
            )
            logger.info(
                "notification_retry_scheduled",
                alert_id=record.alert_id,
                channel_id=channel.id,
                attempt=record.attempt + 1,
                delay_seconds=delay,
                error=record.error,
            )
            return

        logger.warning(
            "delivery_failed_permanently",
            alert_id=record.alert_id,
            channel_id=channel.id,
            kind=record.kind.value,
            attempts=result.attempts,
            error=record.error,
        )
        result.complete(False, now, record.error)

    def _event_finished(self, outcome: EventDispatch) -> None:
        if not outcome.attempted or outcome.delivered:
            return
        logger.warning(
            "event_undelivered",
            alert_id=outcome.event.alert.id,
            kind=outcome.event.kind.value,
            channels=[result.channel_id for result in outcome.attempted],
        )
        if self.on_undelivered is not None:
            self.on_undelivered(outcome)
