"""
alertspine — threshold alerting for server metrics.

Samples go in through :meth:`AlertEngine.ingest`; rules decide when a
(rule, server) pair is breaching; alerts move through
``active → acknowledged → resolved | suppressed``; unacknowledged alerts
escalate through a policy's levels; every notification is delivered per
channel with retries and recorded.

Example:
    >>> from alertspine import AlertEngine, EngineSettings
    >>> with AlertEngine(settings=EngineSettings()) as engine:
    ...     engine.load_definitions("alerts.yaml")
    ...     engine.ingest(sample)
"""

__version__ = "0.1.0"

from alertspine.commands import (  # noqa: E402
    AcknowledgeAlert,
    CommandResult,
    ResolveAlert,
    SuppressAlert,
)
from alertspine.core.clock import ManualClock, SystemClock  # noqa: E402
from alertspine.core.errors import AlertSpineError  # noqa: E402
from alertspine.core.settings import EngineSettings  # noqa: E402
from alertspine.engine import AlertEngine  # noqa: E402
from alertspine.models import (  # noqa: E402
    Alert,
    AlertFilter,
    AlertRule,
    AlertStatus,
    MetricSample,
    NotificationChannel,
    Severity,
)

__all__ = [
    "__version__",
    "AcknowledgeAlert",
    "Alert",
    "AlertEngine",
    "AlertFilter",
    "AlertRule",
    "AlertSpineError",
    "AlertStatus",
    "CommandResult",
    "EngineSettings",
    "ManualClock",
    "MetricSample",
    "NotificationChannel",
    "ResolveAlert",
    "Severity",
    "SuppressAlert",
    "SystemClock",
]
