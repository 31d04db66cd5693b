"""Price providers and the fallback price service."""

from coinwatch.providers.base import BasePriceProvider
from coinwatch.providers.coingecko import BASIC_SYMBOL_TO_ID, CoinGeckoProvider, SymbolCache
from coinwatch.providers.coinmarketcap import CoinMarketCapProvider
from coinwatch.providers.factory import create_provider
from coinwatch.providers.freecryptoapi import FreeCryptoAPIProvider
from coinwatch.providers.service import MAX_SYMBOLS_PER_REQUEST, SUPPORTED_CURRENCIES, PriceService

__all__ = [
    "BASIC_SYMBOL_TO_ID",
    "MAX_SYMBOLS_PER_REQUEST",
    "SUPPORTED_CURRENCIES",
    "BasePriceProvider",
    "CoinGeckoProvider",
    "CoinMarketCapProvider",
    "FreeCryptoAPIProvider",
    "PriceService",
    "SymbolCache",
    "create_provider",
]
