"""CoinMarketCap price provider."""

from datetime import datetime

import httpx

from coinwatch.models import PriceQuote, PriceRequest, PriceResponse
from coinwatch.providers.base import BasePriceProvider


class CoinMarketCapProvider(BasePriceProvider):
    """Price provider backed by the CoinMarketCap Pro API (API key required)."""

    name = "CoinMarketCap"

    def auth_headers(self) -> dict[str, str]:
        return {"X-CMC_PRO_API_KEY": self.settings.api_key}

    async def get_prices(self, request: PriceRequest) -> PriceResponse:
        currency = request.currency.upper()
        try:
            body = await self._get_json(
                "/v1/cryptocurrency/quotes/latest",
                params={"symbol": ",".join(request.symbols), "convert": currency},
            )
            items = body.get("data") if isinstance(body, dict) else None
            if not items:
                raise ValueError("Invalid response format from CoinMarketCap")
            if isinstance(items, dict):
                items = list(items.values())

            quotes = []
            for item in items:
                quote = item["quote"][currency]
                quotes.append(
                    PriceQuote(
                        symbol=item["symbol"],
                        name=item.get("name") or item["symbol"],
                        price=quote["price"],
                        currency=currency,
                        price_change_24h=quote.get("price_change_24h") or 0.0,
                        price_change_percentage_24h=quote.get("percent_change_24h") or 0.0,
                        market_cap=quote.get("market_cap"),
                        volume_24h=quote.get("volume_24h"),
                        fetched_at=item.get("last_updated") or datetime.now(),
                        source=self.name,
                    )
                )
            return PriceResponse(success=True, data=quotes, source=self.name)
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            return self._failure(e)

    async def is_available(self) -> bool:
        try:
            await self._get_json("/v1/key/info", timeout=self.health_check_timeout)
            return True
        except (httpx.HTTPError, ValueError):
            return False
