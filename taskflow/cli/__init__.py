"""CLI module for taskflow."""

from taskflow.cli.commands import app

__all__ = ["app"]
