"""Multi-level escalation with cumulative timeouts."""

from alertspine.escalation.controller import (
    EscalationController,
    EscalationNotifier,
    cumulative_deadline,
    timer_key,
)

__all__ = ["EscalationController", "EscalationNotifier", "cumulative_deadline", "timer_key"]
