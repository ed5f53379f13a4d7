"""Engine-wide primitives: errors, logging, settings, clock, locks."""

from alertspine.core.clock import Clock, ManualClock, SystemClock, generate_ulid
from alertspine.core.errors import (
    AlertNotFoundError,
    AlertSpineError,
    ChannelDeliveryFailure,
    ChannelNotFoundError,
    ConfigurationError,
    ErrorCategory,
    InvalidSampleError,
    InvalidTransitionError,
    LockTimeoutError,
    NotFoundError,
    RuleNotFoundError,
)
from alertspine.core.locks import KeyedLockManager, alert_key, pair_key

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "generate_ulid",
    "AlertSpineError",
    "AlertNotFoundError",
    "ChannelDeliveryFailure",
    "ChannelNotFoundError",
    "ConfigurationError",
    "ErrorCategory",
    "InvalidSampleError",
    "InvalidTransitionError",
    "LockTimeoutError",
    "NotFoundError",
    "RuleNotFoundError",
    "KeyedLockManager",
    "alert_key",
    "pair_key",
]
