"""ISO 8601 helpers shared by the model ``to_dict`` / ``from_dict`` methods."""

from __future__ import annotations

from datetime import UTC, datetime


def format_dt(value: datetime | None) -> str | None:
    """ISO 8601 in UTC; aware values are converted so strings sort by time."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.isoformat()


def parse_dt(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
