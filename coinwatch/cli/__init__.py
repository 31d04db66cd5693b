"""CLI commands for coinwatch.

This package provides the operator command-line interface: users and
alerts, price lookups, inline checks and control of the scheduler queue.
"""

from coinwatch.cli.main import cli, main

__all__ = ["cli", "main"]
