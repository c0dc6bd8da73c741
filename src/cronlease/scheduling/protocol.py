"""Tick backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TICK BACKEND PROTOCOL                                                        │
│                                                                               │
│  A backend controls WHEN a job ticks; the CronJob controls WHAT a tick does. │
│                                                                               │
│   ┌─────────────────┐   startup() once   ┌─────────────────┐                 │
│   │  Thread Backend │ ─────────────────► │  CronJob        │                 │
│   │  (default)      │   tick() every N s │                 │                 │
│   │                 │ ─────────────────► │  - lease        │                 │
│   └─────────────────┘                    │  - due check    │                 │
│                                          │  - ledger claim │                 │
│                                          │  - handler      │                 │
│                                          └─────────────────┘                 │
│                                                                               │
│  One backend per job per process.  Stopping a backend ends the loop; a      │
│  handler already running is allowed to finish and record its outcome.      │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class TickBackend(Protocol):
    """Protocol for pluggable tick timing backends.

    Example (custom backend):
        >>> class MyBackend:
        ...     name = "custom"
        ...
        ...     def start(self, tick_callback, interval_seconds=1.0, startup_callback=None):
        ...         ...
        ...
        ...     def stop(self):
        ...         ...
        ...
        ...     def health(self) -> dict:
        ...         return {"healthy": True, "backend": "custom"}
    """

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 1.0,
        startup_callback: TickCallback | None = None,
    ) -> None:
        """Start the loop.

        Args:
            tick_callback: Async function called on each tick.
            interval_seconds: How often to tick.
            startup_callback: Async function run once before the first tick.
        """
        ...

    def stop(self) -> None:
        """Stop the loop. Must not interrupt a callback that is running."""
        ...

    def health(self) -> dict[str, Any]:
        """Return at least ``healthy``, ``backend``, ``tick_count``, ``last_tick``."""
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
