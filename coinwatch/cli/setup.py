"""Setup commands for coinwatch CLI."""

import click
from rich.panel import Panel

from coinwatch.cli.context import console, error_panel


@click.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Create a template config file and the alert database.

    \b
    Secrets can also come from the environment:
      FIREBASE_PROJECT_ID, FIREBASE_PRIVATE_KEY, FIREBASE_CLIENT_EMAIL,
      COINMARKETCAP_API_KEY, FREECRYPTOAPI_KEY, COINGECKO_API_KEY
    """
    from coinwatch.config import CONFIG_PATH, create_template_config, load_settings, validate_config
    from coinwatch.db import AlertStore
    from coinwatch.errors import CoinwatchError

    config_path = (ctx.find_root().obj or {}).get("config_path") or CONFIG_PATH

    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists at {config_path} (use --force to overwrite)[/yellow]")
    else:
        create_template_config(config_path)
        console.print(f"[green]✓ Wrote template config to {config_path}[/green]")

    try:
        settings = load_settings(config_path)
        store = AlertStore(settings.database_path)
    except CoinwatchError as e:
        error_panel("Invalid configuration", e)

    missing = validate_config(settings)
    body = f"Database: [cyan]{store.db_path}[/cyan]\nTables:   {', '.join(store.get_tables())}"
    if missing:
        body += (
            "\n\n[yellow]Still missing:[/yellow]\n"
            + "\n".join(f"  • {key}" for key in missing)
            + f"\n\n[dim]Edit {config_path} to add these values.[/dim]"
        )
    console.print(Panel(
        body,
        title="[bold]coinwatch[/bold]",
        border_style="yellow" if missing else "green",
    ))
