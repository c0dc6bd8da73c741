"""
CLI layer for cronlease.

Provides a Typer application that reads the shared cron store: job
catalogue, execution history and active leases.  Terminal transport only:
argument parsing, coloured output and table formatting.

Entry point::

    cronlease --help
"""

from cronlease.cli.app import app

__all__ = ["app"]
