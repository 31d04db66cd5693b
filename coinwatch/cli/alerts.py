"""Alert management commands for coinwatch CLI.

Handles creating, listing, removing, activating and deactivating
price alerts.
"""

from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from coinwatch.cli.context import console, error_panel, get_settings, get_store
from coinwatch.errors import CoinwatchError
from coinwatch.models import Direction


@click.command("alert")
@click.argument("symbol")
@click.argument("price")
@click.option("-u", "--user", "user_id", required=True, help="Owning user id.")
@click.option("--up", "direction", flag_value=Direction.CROSS_UP.value, default=True,
              help="Fire when the price rises to PRICE or above (default).")
@click.option("--down", "direction", flag_value=Direction.CROSS_DOWN.value,
              help="Fire when the price falls to PRICE or below.")
@click.pass_context
def create_alert(ctx: click.Context, symbol: str, price: str, user_id: str, direction: str) -> None:
    """Create a price alert.

    SYMBOL is the coin ticker (e.g., BTC, ETH).
    PRICE is the USD target price.

    \b
    Examples:
      coinwatch alert BTC 50000 -u USER_ID          # BTC rises to 50,000
      coinwatch alert ETH 3000 -u USER_ID --down    # ETH falls to 3,000
    """
    try:
        store = get_store(get_settings(ctx))
        alert = store.create_alert(user_id, symbol, price, direction)
    except (CoinwatchError, ValueError) as e:
        error_panel("Failed to create alert", e)

    arrow = "≥" if alert.direction == Direction.CROSS_UP else "≤"
    console.print(Panel(
        f"[bold green]Alert Created[/bold green]\n\n"
        f"ID:        {alert.id}\n"
        f"Symbol:    {alert.symbol}\n"
        f"Condition: price {arrow} ${alert.target_price:,}\n"
        f"Direction: {alert.direction.value}",
        title="[bold]New Alert[/bold]",
        border_style="green",
    ))


@click.command("alerts")
@click.option("-u", "--user", "user_id", default=None, help="Only this user's alerts.")
@click.option("-s", "--symbol", default=None, help="Filter by symbol (substring).")
@click.option("--all", "show_all", is_flag=True, help="Include inactive alerts.")
@click.option("--remove", "remove_id", default=None, help="Remove alert with specified ID.")
@click.option("--activate", "activate_id", default=None, help="Re-arm an inactive alert.")
@click.option("--deactivate", "deactivate_id", default=None, help="Disarm an active alert.")
@click.pass_context
def list_alerts(
    ctx: click.Context,
    user_id: Optional[str],
    symbol: Optional[str],
    show_all: bool,
    remove_id: Optional[str],
    activate_id: Optional[str],
    deactivate_id: Optional[str],
) -> None:
    """Display or manage alerts.

    Shows active alerts. Use --remove, --activate or --deactivate with an
    alert ID to change one.

    \b
    Examples:
      coinwatch alerts                      # List active alerts
      coinwatch alerts --all -s BTC         # Every BTC alert
      coinwatch alerts --remove ALERT_ID    # Delete an alert
    """
    try:
        store = get_store(get_settings(ctx))

        if remove_id is not None:
            alert = store.get_alert(remove_id, user_id)
            store.delete_alert(remove_id, user_id)
            console.print(f"[green]✓ Removed alert {remove_id} ({alert.symbol} {alert.target_price})[/green]")
            return
        if activate_id is not None:
            alert = store.activate_alert(activate_id, user_id)
            console.print(f"[green]✓ Activated alert {alert.id} ({alert.symbol} {alert.target_price})[/green]")
            return
        if deactivate_id is not None:
            alert = store.deactivate_alert(deactivate_id, user_id)
            console.print(f"[green]✓ Deactivated alert {alert.id} ({alert.symbol} {alert.target_price})[/green]")
            return

        alerts = store.list_alerts(user_id=user_id, symbol=symbol, active=None if show_all else True)
    except (CoinwatchError, ValueError) as e:
        error_panel("Failed to manage alerts", e)

    if not alerts:
        console.print(Panel(
            "[dim]No alerts set. Use 'coinwatch alert SYMBOL PRICE -u USER_ID' to create one.[/dim]",
            title="[bold]Alerts[/bold]",
            border_style="dim",
        ))
        return

    table = Table(
        title="Alerts" if show_all else "Active Alerts",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("ID", style="dim")
    table.add_column("Symbol", style="bold")
    table.add_column("Target", justify="right")
    table.add_column("Direction")
    table.add_column("Created", style="dim")
    table.add_column("Status", justify="center")

    for alert in alerts:
        if alert.active:
            status = "[green]●[/green]"
        elif alert.last_notified_at:
            status = f"[yellow]✓ Fired {alert.last_notified_at:%Y-%m-%d %H:%M}[/yellow]"
        else:
            status = "[dim]off[/dim]"
        table.add_row(
            alert.id,
            alert.symbol,
            f"${alert.target_price:,}",
            "▲ up" if alert.direction == Direction.CROSS_UP else "▼ down",
            alert.created_at.strftime("%Y-%m-%d %H:%M"),
            status,
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(alerts)} alerts[/dim]")
