"""``python -m cronlease`` entry point."""

from cronlease.cli.app import app

if __name__ == "__main__":
    app()
