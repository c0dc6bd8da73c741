"""Environment-driven settings for cronlease.

Every instance in a fleet must agree on lease timing and must carry its
own identity.  ``CronSettings`` collects both, validated by pydantic and
read from ``CRONLEASE_*`` environment variables or a ``.env`` file.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not mid-tick
    - **Environment-driven:** ``CRONLEASE_LEASE_SECONDS=45`` etc.
    - **Sensible defaults:** 1s tick, 30s lease, renew every 10s

Examples:
    >>> from cronlease.core.settings import CronSettings
    >>> settings = CronSettings(lease_seconds=60)
    >>> settings.effective_heartbeat_seconds
    20.0

Tags:
    settings, configuration, pydantic, environment, cronlease
"""

from __future__ import annotations

from pathlib import Path
from uuid import uuid4

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cronlease.core.timestamps import MINUTES_PER_YEAR

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CronSettings(BaseSettings):
    """Settings shared by every cron job in a process.

    Fields
    ──────
    database               : SQLite path or ``postgresql://`` URL
    tick_interval_seconds  : Poll interval of each job's tick loop
    lease_seconds          : Lease duration taken at each tick
    heartbeat_seconds      : Renewal period while a handler runs (lease/3 if unset)
    max_catch_up           : Default catch-up bound for new jobs
    max_search_minutes     : Time calculator scan bound
    instance_id            : Lease holder identity of this process
    auto_create_schema     : Create tables on job initialisation
    log_level / json_logs  : Structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="CRONLEASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Store ────────────────────────────────────────────────────
    database: str = Field(
        default_factory=lambda: str(Path.home() / ".cronlease" / "cronlease.db"),
        description="SQLite file path or postgresql:// URL",
    )
    auto_create_schema: bool = True

    # ── Timing ───────────────────────────────────────────────────
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    lease_seconds: int = Field(default=30, ge=1)
    heartbeat_seconds: float | None = Field(default=None, gt=0)
    max_catch_up: int = Field(default=10, ge=0)
    max_search_minutes: int = Field(default=MINUTES_PER_YEAR, ge=1)

    # ── Identity ─────────────────────────────────────────────────
    instance_id: str = Field(default_factory=lambda: str(uuid4()))

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _heartbeat_within_lease(self) -> CronSettings:
        if self.heartbeat_seconds is not None and self.heartbeat_seconds >= self.lease_seconds:
            raise ValueError("heartbeat_seconds must be shorter than lease_seconds")
        return self

    @property
    def effective_heartbeat_seconds(self) -> float:
        """Renewal period: explicit value or a third of the lease."""
        if self.heartbeat_seconds is not None:
            return self.heartbeat_seconds
        return self.lease_seconds / 3


def get_settings(**overrides) -> CronSettings:
    """Load settings from the environment, applying explicit overrides."""
    return CronSettings(**overrides)
