"""Alert lifecycle: state machine and cooldown tracking."""

from alertspine.alerts.cooldown import CooldownStore
from alertspine.alerts.state_machine import (
    AlertStateMachine,
    LifecycleEvent,
    LifecycleKind,
    LifecycleListener,
    OpenOutcome,
    OpenResult,
)

__all__ = [
    "AlertStateMachine",
    "CooldownStore",
    "LifecycleEvent",
    "LifecycleKind",
    "LifecycleListener",
    "OpenOutcome",
    "OpenResult",
]
