"""
Alerts router: query alerts and run operator actions.

Endpoints:
    GET  /alerts                    List alerts (filterable, paged)
    GET  /alerts/stats              Totals, resolution rate, mean time to resolve
    GET  /alerts/{id}               Alert details
    GET  /alerts/{id}/deliveries    Per-channel delivery summary and attempts
    POST /alerts/{id}/ack           Acknowledge an active alert
    POST /alerts/{id}/resolve       Resolve an open alert
    POST /alerts/{id}/suppress      Suppress an open alert
    POST /alerts/bulk               Run several actions; each succeeds or fails alone

Actions go through the engine's command layer, so a rejected transition
comes back as a 409 problem response rather than an exception.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Path, Query, Request

from alertspine.api.deps import Engine
from alertspine.api.errors import command_failure
from alertspine.api.schemas import (
    ActionRequest,
    BulkRequest,
    PagedResponse,
    PageMeta,
    SuppressRequest,
)
from alertspine.commands import AcknowledgeAlert, Command, ResolveAlert, SuppressAlert
from alertspine.models import AlertFilter, AlertStatus, Severity

router = APIRouter(prefix="/alerts")


def _run(engine: Engine, command: Command, request: Request) -> Any:
    result = engine.execute(command)
    if not result.success:
        return command_failure(result, instance=str(request.url))
    return result.to_dict()


@router.get("", response_model=PagedResponse)
def list_alerts(
    engine: Engine,
    server_id: str | None = Query(default=None),
    status: AlertStatus | None = Query(default=None),
    severity: Severity | None = Query(default=None),
    rule_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
) -> PagedResponse:
    alert_filter = AlertFilter(
        server_id=server_id,
        status=status,
        severity=severity,
        rule_id=rule_id,
        limit=limit,
        offset=offset,
    )
    alerts = engine.list_alerts(alert_filter)
    total = engine.count_alerts(alert_filter)
    return PagedResponse(
        data=[alert.to_dict() for alert in alerts],
        page=PageMeta(total=total, limit=limit, offset=offset, has_more=offset + len(alerts) < total),
    )


@router.get("/stats")
def alert_stats(
    engine: Engine,
    since: datetime | None = Query(default=None, description="Only alerts triggered at or after"),
) -> dict[str, Any]:
    if since is not None and since.tzinfo is None:
        since = since.replace(tzinfo=UTC)
    return engine.stats(since).to_dict()


@router.post("/bulk")
def bulk_actions(body: BulkRequest, engine: Engine) -> dict[str, Any]:
    results = engine.bulk_execute(action.to_command() for action in body.actions)
    succeeded = sum(1 for result in results if result.success)
    return {
        "results": [result.to_dict() for result in results],
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
    }


@router.get("/{alert_id}")
def get_alert(engine: Engine, alert_id: str = Path(...)) -> dict[str, Any]:
    return engine.get_alert(alert_id).to_dict()


@router.get("/{alert_id}/deliveries")
def get_deliveries(engine: Engine, alert_id: str = Path(...)) -> dict[str, Any]:
    summaries = engine.delivery_history(alert_id)
    attempts = engine.notifications(alert_id)
    return {
        "alert_id": alert_id,
        "channels": [summary.to_dict() for summary in summaries],
        "attempts": [attempt.to_dict() for attempt in attempts],
    }


@router.post("/{alert_id}/ack")
def acknowledge_alert(
    body: ActionRequest, engine: Engine, request: Request, alert_id: str = Path(...)
) -> Any:
    return _run(engine, AcknowledgeAlert(alert_id=alert_id, by=body.by), request)


@router.post("/{alert_id}/resolve")
def resolve_alert(
    body: ActionRequest, engine: Engine, request: Request, alert_id: str = Path(...)
) -> Any:
    return _run(engine, ResolveAlert(alert_id=alert_id, by=body.by), request)


@router.post("/{alert_id}/suppress")
def suppress_alert(
    body: SuppressRequest, engine: Engine, request: Request, alert_id: str = Path(...)
) -> Any:
    return _run(
        engine, SuppressAlert(alert_id=alert_id, by=body.by, reason=body.reason), request
    )
