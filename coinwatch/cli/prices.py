"""Price lookup command for coinwatch CLI."""

from typing import Optional

import click
from rich.table import Table

from coinwatch.cli.context import console, error_panel, get_settings, run
from coinwatch.config import ProviderType
from coinwatch.errors import CoinwatchError
from coinwatch.models import PriceRequest, PriceResponse


async def _fetch(settings, request: PriceRequest, provider: Optional[str]) -> PriceResponse:
    from coinwatch.providers import PriceService

    service = PriceService(settings.prices)
    try:
        await service.initialize()
        if provider:
            return await service.get_prices_with_provider(ProviderType(provider), request)
        return await service.get_prices(request)
    finally:
        await service.aclose()


@click.command("price")
@click.argument("symbols", nargs=-1, required=True)
@click.option("-c", "--currency", default="USD", show_default=True, help="Quote currency.")
@click.option(
    "-p", "--provider",
    type=click.Choice([p.value for p in ProviderType]),
    default=None,
    help="Query one provider without fallback.",
)
@click.pass_context
def price(ctx: click.Context, symbols: tuple[str, ...], currency: str, provider: Optional[str]) -> None:
    """Show live quotes for one or more coins.

    \b
    Examples:
      coinwatch price BTC ETH SOL
      coinwatch price BTC -c EUR -p coinmarketcap
    """
    request = PriceRequest(symbols=[s.upper() for s in symbols], currency=currency.upper())
    try:
        response = run(_fetch(get_settings(ctx), request, provider))
    except CoinwatchError as e:
        error_panel("Failed to fetch prices", e)

    if not response.success:
        error_panel(f"{response.source} returned no prices", Exception("\n".join(response.errors)))

    table = Table(title=f"Prices ({response.source})", show_header=True, header_style="bold cyan")
    table.add_column("Symbol", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("24h %", justify="right")
    table.add_column("Market Cap", justify="right", style="dim")
    table.add_column("Volume 24h", justify="right", style="dim")

    for quote in response.data:
        color = "green" if quote.price_change_percentage_24h >= 0 else "red"
        table.add_row(
            quote.symbol,
            f"{quote.price:,.8g} {quote.currency}",
            f"[{color}]{quote.price_change_percentage_24h:+.2f}%[/{color}]",
            f"{quote.market_cap:,.0f}" if quote.market_cap else "-",
            f"{quote.volume_24h:,.0f}" if quote.volume_24h else "-",
        )
    console.print(table)

    missing = set(request.symbols) - {q.symbol.upper() for q in response.data}
    if missing:
        console.print(f"[yellow]No price for: {', '.join(sorted(missing))}[/yellow]")
