"""User management commands for coinwatch CLI."""

from typing import Optional

import click
from rich.table import Table

from coinwatch.cli.context import console, error_panel, get_settings, get_store
from coinwatch.errors import CoinwatchError


@click.group("user")
def user() -> None:
    """Manage alert owners and their push device tokens."""


@user.command("add")
@click.argument("name")
@click.argument("email")
@click.option("--token", "device_token", default=None, help="Push device token.")
@click.pass_context
def add_user(ctx: click.Context, name: str, email: str, device_token: Optional[str]) -> None:
    """Create a user."""
    try:
        store = get_store(get_settings(ctx))
        created = store.create_user(name, email, device_token=device_token)
    except (CoinwatchError, ValueError) as e:
        error_panel("Failed to create user", e)

    console.print(f"[green]✓ Created user {created.name} ({created.id})[/green]")


@user.command("list")
@click.pass_context
def list_users(ctx: click.Context) -> None:
    """List users."""
    try:
        users = get_store(get_settings(ctx)).get_users()
    except CoinwatchError as e:
        error_panel("Failed to list users", e)

    if not users:
        console.print("[dim]No users. Use 'coinwatch user add NAME EMAIL' to create one.[/dim]")
        return

    table = Table(title="Users", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Email")
    table.add_column("Push", justify="center")
    for u in users:
        table.add_row(u.id, u.name, u.email, "[green]●[/green]" if u.device_token else "[dim]-[/dim]")
    console.print(table)


@user.command("token")
@click.argument("user_id")
@click.argument("device_token", required=False)
@click.option("--clear", is_flag=True, help="Remove the device token.")
@click.pass_context
def set_token(ctx: click.Context, user_id: str, device_token: Optional[str], clear: bool) -> None:
    """Set or clear a user's push device token."""
    if not clear and not device_token:
        raise click.UsageError("Provide DEVICE_TOKEN or --clear")
    try:
        updated = get_store(get_settings(ctx)).set_device_token(user_id, None if clear else device_token)
    except CoinwatchError as e:
        error_panel("Failed to update device token", e)

    state = "set" if updated.device_token else "cleared"
    console.print(f"[green]✓ Device token {state} for {updated.name}[/green]")
