"""Engine settings.

``EngineSettings`` reads ``ALERTSPINE_*`` environment variables (and an
optional ``.env`` file) so deployments tune timing and storage without code
changes.

Examples:
    >>> settings = EngineSettings(tick_interval_seconds=0.5)
    >>> settings.lock_retry_attempts
    3
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Runtime configuration for :class:`~alertspine.engine.AlertEngine`.

    Fields
    ──────
    log_level                : structlog level
    json_logs                : force JSON (True), console (False) or auto (None)
    database_path            : SQLite file for persistent state (None = in-memory store)
    tick_interval_seconds    : how often timers and gap sweeps run
    dispatch_workers         : thread pool size for channel sends
    lock_timeout_seconds     : wait limit for per-key locks
    lock_retry_attempts      : retries for a contended (rule, server) lock
    lock_retry_base_delay    : first backoff delay between lock retries
    sample_tolerance_seconds : how late an out-of-order sample may arrive
    retention_days           : age after which terminal alerts are purged
    """

    model_config = SettingsConfigDict(
        env_prefix="ALERTSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Storage ──────────────────────────────────────────────────
    database_path: Path | None = Field(
        default=None,
        description="SQLite database file; None keeps state in memory",
    )
    retention_days: int = Field(default=90, ge=1)

    # ── Timing ───────────────────────────────────────────────────
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    sample_tolerance_seconds: float = Field(default=30.0, ge=0)

    # ── Concurrency ──────────────────────────────────────────────
    dispatch_workers: int = Field(default=8, ge=1)
    lock_timeout_seconds: float = Field(default=5.0, gt=0)
    lock_retry_attempts: int = Field(default=3, ge=0)
    lock_retry_base_delay: float = Field(default=0.05, ge=0)

    # ── API ──────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8080
