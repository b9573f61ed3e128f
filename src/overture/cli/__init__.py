"""Command-line interface."""

from overture.cli.main import app, main

__all__ = ["app", "main"]
