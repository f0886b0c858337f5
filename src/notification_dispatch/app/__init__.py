"""Command-line application layer."""

from notification_dispatch.app.cli import cli, main

__all__ = ["cli", "main"]
