"""Persistence for rules, channels, alerts and notification history."""

from __future__ import annotations

from pathlib import Path

from alertspine.storage.base import AlertStore
from alertspine.storage.memory import InMemoryAlertStore
from alertspine.storage.sqlite import SQLiteAlertStore


def open_store(path: str | Path | None = None) -> AlertStore:
    """Open a SQLite store at *path*, or an in-memory store when None."""
    if path is None:
        return InMemoryAlertStore()
    return SQLiteAlertStore(path)


__all__ = ["AlertStore", "InMemoryAlertStore", "SQLiteAlertStore", "open_store"]
