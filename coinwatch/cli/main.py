"""Main CLI entry point for coinwatch.

This module provides the main click group and lazy loading of command
modules, so that ``coinwatch --help`` does not import httpx or firebase.
"""

from pathlib import Path
from typing import Optional

import click


class LazyGroup(click.Group):
    """A click Group that lazily loads commands.

    Command modules are only imported when the command is invoked.
    """

    def __init__(self, *args, lazy_subcommands: dict[str, str] | None = None, **kwargs):
        """Initialize the lazy group.

        Args:
            lazy_subcommands: Mapping of command names to module paths.
        """
        super().__init__(*args, **kwargs)
        self._lazy_subcommands = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        base = super().list_commands(ctx)
        lazy = list(self._lazy_subcommands.keys())
        return sorted(set(base + lazy))

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        if cmd_name in self.commands:
            return self.commands[cmd_name]
        if cmd_name in self._lazy_subcommands:
            return self._lazy_load(cmd_name)
        return None

    def _lazy_load(self, cmd_name: str) -> click.Command:
        """Import a command from its module path and register it."""
        import importlib

        module_path = self._lazy_subcommands[cmd_name]
        module = importlib.import_module(module_path)

        # Commands are module attributes whose click name matches cmd_name
        cmd = None
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if isinstance(attr, click.Command) and attr.name == cmd_name:
                cmd = attr
                break

        if cmd is None:
            raise click.ClickException(f"Could not find command '{cmd_name}' in {module_path}")

        self.add_command(cmd)
        return cmd


LAZY_SUBCOMMANDS = {
    "init": "coinwatch.cli.setup",
    # Users and alerts
    "user": "coinwatch.cli.users",
    "alert": "coinwatch.cli.alerts",
    "alerts": "coinwatch.cli.alerts",
    # Prices
    "price": "coinwatch.cli.prices",
    # Checks and scheduling
    "check": "coinwatch.cli.scheduler",
    "run": "coinwatch.cli.scheduler",
    "trigger": "coinwatch.cli.scheduler",
    "queue": "coinwatch.cli.scheduler",
    "status": "coinwatch.cli.scheduler",
    "notify-test": "coinwatch.cli.scheduler",
}


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(cls=LazyGroup, lazy_subcommands=LAZY_SUBCOMMANDS, context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="coinwatch")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/coinwatch/config.toml).",
)
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool) -> None:
    """coinwatch - crypto price alerts with push notifications.

    Alerts fire once when a coin's USD price crosses the target, notify the
    owner's device and are then deactivated.

    \b
    Quick Start:
      coinwatch init                          # Write a template config
      coinwatch user add Alice alice@x.io     # Create a user
      coinwatch alert BTC 50000 -u ID --up    # Alert when BTC >= 50,000
      coinwatch run                           # Start the scheduler
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
