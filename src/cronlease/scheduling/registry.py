"""Explicit registry of the cron jobs running in one process.

Applications construct a :class:`CronRegistry`, hand it to
:func:`create_cron_job` (or call :meth:`CronRegistry.register`), and start
and stop every job through it.  ``manifest()`` lists the registered jobs
for deployment tooling.

Example:
    >>> registry = CronRegistry()
    >>> create_cron_job("nightly", "0 2 * * *", conn, handler=run, registry=registry)
    >>> registry.start_all()
    >>> registry.manifest()
    [{'primitive': 'cron', 'name': 'nightly', 'infrastructure': 'sqlite', 'config': {...}}]

Tags:
    cron, registry, manifest, lifecycle, cronlease
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import Any

from cronlease.core.errors import DuplicateJobError, JobNotFoundError
from cronlease.core.logging import get_logger

from .runner import CronJob

logger = get_logger(__name__)


class CronRegistry:
    """Name → :class:`CronJob` mapping with fleet-style start/stop."""

    def __init__(self) -> None:
        self._jobs: dict[str, CronJob] = {}
        self._lock = threading.Lock()

    def register(self, job: CronJob) -> CronJob:
        """Add a job.

        Raises:
            DuplicateJobError: A job with the same name is registered.
        """
        with self._lock:
            if job.name in self._jobs:
                raise DuplicateJobError(job.name)
            self._jobs[job.name] = job
        logger.debug("job_registered_locally", job_name=job.name)
        return job

    def unregister(self, name: str) -> CronJob:
        """Remove a job (stopping it first).

        Raises:
            JobNotFoundError: No job with that name.
        """
        with self._lock:
            job = self._jobs.pop(name, None)
        if job is None:
            raise JobNotFoundError(name)
        job.stop()
        return job

    def get(self, name: str) -> CronJob:
        """Look up a job.

        Raises:
            JobNotFoundError: No job with that name.
        """
        try:
            return self._jobs[name]
        except KeyError:
            raise JobNotFoundError(name) from None

    def names(self) -> list[str]:
        return sorted(self._jobs)

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __iter__(self) -> Iterator[CronJob]:
        return iter([self._jobs[name] for name in self.names()])

    def __len__(self) -> int:
        return len(self._jobs)

    def start_all(self) -> None:
        for job in self:
            job.start()
        logger.info("cron_registry_started", jobs=self.names())

    def stop_all(self) -> None:
        for job in self:
            job.stop()
        logger.info("cron_registry_stopped", jobs=self.names())

    def manifest(self) -> list[dict[str, Any]]:
        """One ``{primitive, name, infrastructure, config}`` entry per job."""
        return [job.manifest_entry() for job in self]


__all__ = ["CronRegistry"]
