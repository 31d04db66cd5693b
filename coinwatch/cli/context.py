"""Shared helpers for CLI commands."""

import asyncio
import logging
from typing import Any, Coroutine, TypeVar

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from coinwatch.config import Settings, load_settings

console = Console()

T = TypeVar("T")


def get_settings(ctx: click.Context) -> Settings:
    """Load settings for the current invocation and set up logging."""
    obj = ctx.find_root().obj or {}
    settings = load_settings(obj.get("config_path"))
    configure_logging("DEBUG" if obj.get("verbose") else settings.log_level)
    return settings


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_store(settings: Settings):
    from coinwatch.db import AlertStore

    return AlertStore(settings.database_path)


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def error_panel(title: str, error: Exception) -> None:
    """Print an error panel and exit with status 1."""
    console.print(Panel(
        f"[red]{title}:[/red]\n\n{error}",
        title="[bold red]Error[/bold red]",
        border_style="red",
    ))
    raise SystemExit(1)
