"""
Request and response schemas for the REST API.

Successful responses carry the engine's own ``to_dict()`` payloads; every
4xx/5xx response is a :class:`ProblemDetail`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from alertspine.commands import Command, build_command

# ── RFC 7807 Problem Detail ─────────────────────────────────────────────


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``NOT_FOUND`` (404): alert, rule or channel does not exist
        - ``INVALID_TRANSITION`` (409): action not valid from the alert's status
        - ``CONFIGURATION`` (422): malformed definition
        - ``INVALID_SAMPLE`` (422): sample does not fit the rule
        - ``LOCK_TIMEOUT`` (503): contended lock, retry later
        - ``INTERNAL`` (500): unexpected server error
    """

    type: str = Field(default="about:blank")
    title: str
    status: int
    code: str = "INTERNAL"
    detail: str = ""
    instance: str = ""
    context: dict[str, Any] = Field(default_factory=dict)


# ── Paging ──────────────────────────────────────────────────────────────


class PageMeta(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class PagedResponse(BaseModel):
    data: list[dict[str, Any]]
    page: PageMeta


# ── Alert actions ───────────────────────────────────────────────────────


class ActionRequest(BaseModel):
    """Body for ``/alerts/{id}/ack`` and ``/alerts/{id}/resolve``."""

    by: str = Field(..., min_length=1, description="Operator performing the action")


class SuppressRequest(ActionRequest):
    reason: str | None = Field(default=None, description="Stored in the alert's metadata")


class BulkAction(BaseModel):
    alert_id: str
    action: Literal["ack", "resolve", "suppress"]
    by: str = Field(..., min_length=1)
    reason: str | None = None

    def to_command(self) -> Command:
        return build_command(self.action, self.alert_id, self.by, self.reason)


class BulkRequest(BaseModel):
    actions: list[BulkAction] = Field(..., min_length=1)


# ── Samples ─────────────────────────────────────────────────────────────


class SampleIn(BaseModel):
    """One metric observation. A missing timestamp means "now"."""

    server_id: str = Field(..., min_length=1)
    metric: str = Field(..., min_length=1)
    value: float = Field(..., allow_inf_nan=False)
    timestamp: datetime | None = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class SampleBatch(BaseModel):
    samples: list[SampleIn] = Field(..., min_length=1)
