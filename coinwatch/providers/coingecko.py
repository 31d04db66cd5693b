"""CoinGecko price provider."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import httpx

from coinwatch.models import PriceQuote, PriceRequest, PriceResponse
from coinwatch.providers.base import BasePriceProvider

logger = logging.getLogger(__name__)

SYMBOL_CACHE_TTL = timedelta(hours=24)

# Used when the coin list cannot be fetched
BASIC_SYMBOL_TO_ID = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "bnb": "binancecoin",
    "ada": "cardano",
    "sol": "solana",
    "xrp": "ripple",
    "dot": "polkadot",
    "doge": "dogecoin",
    "avax": "avalanche-2",
    "matic": "matic-network",
    "link": "chainlink",
    "ltc": "litecoin",
    "atom": "cosmos",
    "near": "near",
    "ftm": "fantom",
    "algo": "algorand",
    "vet": "vechain",
    "icp": "internet-computer",
    "fil": "filecoin",
    "trx": "tron",
}

# Win ticker collisions in the coin list (many tokens reuse "eth", "sol", ...)
PRIORITY_IDS = frozenset({
    "bitcoin", "ethereum", "binancecoin", "cardano", "solana", "ripple",
    "polkadot", "dogecoin", "avalanche-2", "matic-network", "chainlink",
    "litecoin", "cosmos", "near", "fantom", "algorand", "vechain",
    "internet-computer", "filecoin", "tron", "uniswap", "aave",
    "compound-governance-token", "maker", "sushi", "yearn-finance",
    "curve-dao-token", "balancer", "synthetix-network-token",
})


@dataclass
class SymbolCache:
    """Ticker (lowercase) to CoinGecko coin id mapping."""

    data: dict[str, str]
    last_updated: datetime = field(default_factory=datetime.now)
    ttl: timedelta = SYMBOL_CACHE_TTL

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return now - self.last_updated < self.ttl


def build_symbol_map(coins: list[dict]) -> dict[str, str]:
    """Map tickers to coin ids, preferring priority ids on collisions."""
    mapping: dict[str, str] = {}
    for coin in coins:
        if coin.get("symbol") and coin.get("id") in PRIORITY_IDS:
            mapping[coin["symbol"].lower()] = coin["id"]
    for coin in coins:
        if coin.get("symbol") and coin.get("id"):
            mapping.setdefault(coin["symbol"].lower(), coin["id"])
    return mapping


class CoinGeckoProvider(BasePriceProvider):
    """Price provider backed by the CoinGecko public API."""

    name = "CoinGecko"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.symbol_cache: Optional[SymbolCache] = None

    def auth_headers(self) -> dict[str, str]:
        if self.settings.api_key:
            return {"x-cg-demo-api-key": self.settings.api_key}
        return {}

    async def get_prices(self, request: PriceRequest) -> PriceResponse:
        currency = request.currency.lower()
        try:
            symbol_map = await self._get_symbol_map()
            id_to_symbol: dict[str, str] = {}
            for symbol in request.symbols:
                coin_id = symbol_map.get(symbol.lower())
                if coin_id:
                    id_to_symbol.setdefault(coin_id, symbol.upper())
            if not id_to_symbol:
                raise ValueError("No valid coin IDs found for the provided symbols")

            data = await self._get_json(
                "/api/v3/simple/price",
                params={
                    "ids": ",".join(id_to_symbol),
                    "vs_currencies": currency,
                    "include_24hr_change": "true",
                    "include_market_cap": "true",
                    "include_24hr_vol": "true",
                },
            )
            if not isinstance(data, dict) or not data:
                raise ValueError("Invalid response format from CoinGecko")

            quotes = []
            for coin_id, item in data.items():
                symbol = id_to_symbol.get(coin_id, coin_id.upper())
                price = item.get(currency) if isinstance(item, dict) else None
                if isinstance(price, bool) or not isinstance(price, (int, float)):
                    logger.warning("CoinGecko returned no %s price for %s", currency, coin_id)
                    continue
                change_pct = item.get(f"{currency}_24h_change") or 0.0
                quotes.append(
                    PriceQuote(
                        symbol=symbol,
                        name=coin_id,
                        price=price,
                        currency=request.currency,
                        # CoinGecko only reports the percentage change
                        price_change_24h=change_pct,
                        price_change_percentage_24h=change_pct,
                        market_cap=item.get(f"{currency}_market_cap"),
                        volume_24h=item.get(f"{currency}_24h_vol"),
                        source=self.name,
                    )
                )
            return PriceResponse(success=True, data=quotes, source=self.name)
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            return self._failure(e)

    async def is_available(self) -> bool:
        try:
            await self._get_json("/api/v3/ping", timeout=self.health_check_timeout)
            return True
        except (httpx.HTTPError, ValueError):
            return False

    async def _get_symbol_map(self) -> dict[str, str]:
        if self.symbol_cache is not None and self.symbol_cache.is_valid():
            return self.symbol_cache.data
        try:
            await self.refresh_symbol_cache()
        except (httpx.HTTPError, ValueError, TypeError) as e:
            logger.warning("CoinGecko coin list unavailable, using built-in symbol map: %s", e)
            return BASIC_SYMBOL_TO_ID
        return self.symbol_cache.data

    async def refresh_symbol_cache(self) -> None:
        """Refetch the full coin list and rebuild the symbol cache.

        Raises:
            httpx.HTTPError: If the request fails.
            ValueError: If the response is not a non-empty coin list.
        """
        coins = await self._get_json("/api/v3/coins/list")
        if not isinstance(coins, list) or not coins:
            raise ValueError("Invalid coin list response from CoinGecko")
        self.symbol_cache = SymbolCache(data=build_symbol_map(coins))
        logger.info("CoinGecko symbol cache refreshed with %d entries", len(self.symbol_cache.data))

    def clear_symbol_cache(self) -> None:
        self.symbol_cache = None

    def get_cache_info(self) -> dict:
        if self.symbol_cache is None:
            return {"is_valid": False, "last_updated": None, "size": 0}
        return {
            "is_valid": self.symbol_cache.is_valid(),
            "last_updated": self.symbol_cache.last_updated,
            "size": len(self.symbol_cache.data),
        }
