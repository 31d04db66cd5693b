"""Provider factory."""

from typing import Optional

import httpx

from coinwatch.config import ProviderSettings, ProviderType
from coinwatch.errors import PROVIDER_NOT_SUPPORTED, PriceServiceError
from coinwatch.providers.base import HEALTH_CHECK_TIMEOUT, BasePriceProvider
from coinwatch.providers.coingecko import CoinGeckoProvider
from coinwatch.providers.coinmarketcap import CoinMarketCapProvider
from coinwatch.providers.freecryptoapi import FreeCryptoAPIProvider

PROVIDER_CLASSES: dict[ProviderType, type[BasePriceProvider]] = {
    ProviderType.COINGECKO: CoinGeckoProvider,
    ProviderType.COINMARKETCAP: CoinMarketCapProvider,
    ProviderType.FREECRYPTOAPI: FreeCryptoAPIProvider,
}


def create_provider(
    provider_type: ProviderType,
    settings: ProviderSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    health_check_timeout: float = HEALTH_CHECK_TIMEOUT,
) -> BasePriceProvider:
    """Build a provider instance for a provider type.

    Raises:
        PriceServiceError: If the provider type is not supported.
    """
    try:
        provider_cls = PROVIDER_CLASSES[ProviderType(provider_type)]
    except (KeyError, ValueError):
        raise PriceServiceError(f"{PROVIDER_NOT_SUPPORTED}: {provider_type}") from None
    return provider_cls(settings, transport=transport, health_check_timeout=health_check_timeout)
