"""Threading-based tick backend.

The default backend: one daemon thread per job.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND                                                               │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │              Daemon Thread (loop)                       │                │
│   │                                                         │                │
│   │   asyncio.run(startup_callback())     ◄── once          │                │
│   │   while not stop_event.wait(interval):                  │                │
│   │       tick_count += 1                                   │                │
│   │       asyncio.run(tick_callback())    ◄── every tick    │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│   stop()                                                                      │
│      stop_event.set()                                                         │
│      thread.join(timeout)        a running tick keeps its thread alive       │
│                                  until its handler has recorded an outcome   │
└──────────────────────────────────────────────────────────────────────────────┘

A failing startup callback ends the loop: a job that cannot initialise
(unreachable store, schedule with no matching time) does not tick.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import UTC, datetime
from typing import Any

from cronlease.core.logging import get_logger

from .protocol import BackendHealth, TickCallback

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Daemon-thread tick loop.

    Example:
        >>> backend = ThreadSchedulerBackend(name="nightly")
        >>>
        >>> async def my_tick():
        ...     print("Tick!")
        ...
        >>> backend.start(my_tick, interval_seconds=1.0)
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, name: str | None = None, join_timeout: float = 5.0) -> None:
        self._label = name or "cronlease"
        self._join_timeout = join_timeout
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 1.0
        self._started = False
        self._startup_error: BaseException | None = None
        self._lock = threading.Lock()

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 1.0,
        startup_callback: TickCallback | None = None,
    ) -> None:
        """Start the loop in a daemon thread.

        Args:
            tick_callback: Async function to call on each tick.
            interval_seconds: How often to tick.
            startup_callback: Async function run once before ticking.
        """
        if self._started:
            logger.warning("backend_already_started", job_name=self._label)
            return

        self._interval = interval_seconds
        self._startup_error = None
        self._stop_event.clear()

        def _loop() -> None:
            logger.info("backend_started", job_name=self._label, interval_seconds=interval_seconds)
            if startup_callback is not None:
                try:
                    asyncio.run(startup_callback())
                except Exception as e:
                    self._startup_error = e
                    logger.exception("backend_startup_failed", job_name=self._label, error=str(e))
                    return

            while not self._stop_event.wait(interval_seconds):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = datetime.now(UTC)

                try:
                    asyncio.run(tick_callback())
                except Exception as e:
                    logger.exception("tick_failed", job_name=self._label, error=str(e))

            logger.info("backend_stopped", job_name=self._label)

        self._thread = threading.Thread(target=_loop, daemon=True, name=f"cronlease-{self._label}")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop.

        Waits up to ``join_timeout`` seconds for a running tick; past that
        the tick finishes on its own thread.
        """
        if not self._started:
            return

        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._join_timeout)
            if self._thread.is_alive():
                logger.warning("backend_tick_still_running", job_name=self._label)

        self._started = False
        logger.info("backend_shutdown_complete", job_name=self._label)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until the loop thread has exited. Returns False on timeout."""
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        """Return structured health status."""
        extra: dict[str, Any] = {"interval_seconds": self._interval}
        if self._startup_error is not None:
            extra["startup_error"] = str(self._startup_error)
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra=extra,
        )

    @property
    def is_running(self) -> bool:
        """Check if backend is currently running."""
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    @property
    def startup_error(self) -> BaseException | None:
        """Exception raised by the startup callback, if any."""
        return self._startup_error
