"""FreeCryptoAPI price provider."""

from datetime import datetime

import httpx

from coinwatch.models import PriceQuote, PriceRequest, PriceResponse
from coinwatch.providers.base import BasePriceProvider


class FreeCryptoAPIProvider(BasePriceProvider):
    """Price provider backed by FreeCryptoAPI (bearer token auth)."""

    name = "FreeCryptoAPI"

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.api_key}"}

    async def get_prices(self, request: PriceRequest) -> PriceResponse:
        currency = request.currency.upper()
        try:
            body = await self._get_json(
                "/v1/getData",
                params={"symbol": " ".join(request.symbols), "convert": currency},
            )
            items = body.get("symbols") if isinstance(body, dict) else None
            if not isinstance(items, list):
                raise ValueError("Invalid response format from FreeCryptoAPI")

            # No name, absolute change, market cap or volume in this API
            quotes = [
                PriceQuote(
                    symbol=item["symbol"],
                    name=item["symbol"],
                    price=float(item["last"]),
                    currency=currency,
                    price_change_percentage_24h=float(item.get("daily_change_percentage") or 0),
                    fetched_at=item.get("date") or datetime.now(),
                    source=self.name,
                )
                for item in items
            ]
            return PriceResponse(success=True, data=quotes, source=self.name)
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            return self._failure(e)

    async def is_available(self) -> bool:
        try:
            body = await self._get_json(
                "/v1/getData", params={"symbol": "BTC"}, timeout=self.health_check_timeout
            )
        except (httpx.HTTPError, ValueError):
            return False
        return (
            isinstance(body, dict)
            and body.get("status") == "success"
            and isinstance(body.get("symbols"), list)
        )
