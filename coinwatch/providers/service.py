"""Price aggregation with provider fallback."""

import asyncio
import logging
from typing import Optional

import httpx

from coinwatch.config import PriceSettings, ProviderType
from coinwatch.errors import (
    INVALID_SYMBOLS,
    TOO_MANY_SYMBOLS,
    PriceRequestError,
    ProviderNotAvailableError,
)
from coinwatch.models import SYMBOL_PATTERN, PriceQuote, PriceRequest, PriceResponse
from coinwatch.providers.base import BasePriceProvider
from coinwatch.providers.factory import create_provider

logger = logging.getLogger(__name__)

MAX_SYMBOLS_PER_REQUEST = 100
SUPPORTED_CURRENCIES = ("USD", "BRL", "EUR", "GBP", "JPY", "CAD", "AUD")


def validate_request(request: PriceRequest) -> None:
    """Reject malformed requests before any network call.

    Raises:
        PriceRequestError: If symbols are missing, too many, or malformed,
            or the currency is not supported.
    """
    if not request.symbols:
        raise PriceRequestError(INVALID_SYMBOLS)
    if len(request.symbols) > MAX_SYMBOLS_PER_REQUEST:
        raise PriceRequestError(TOO_MANY_SYMBOLS)
    invalid = [s for s in request.symbols if not SYMBOL_PATTERN.match(s)]
    if invalid:
        raise PriceRequestError(f"{INVALID_SYMBOLS}: {', '.join(invalid)}")
    if request.currency.upper() not in SUPPORTED_CURRENCIES:
        raise PriceRequestError(f"Unsupported currency: {request.currency}")


class PriceService:
    """Routes price requests to the current provider with ordered fallback.

    A fallback that succeeds becomes the current provider for later calls.
    """

    def __init__(
        self,
        settings: Optional[PriceSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the service.

        Args:
            settings: Provider configuration (defaults to PriceSettings()).
            transport: Optional httpx transport shared by all providers.
        """
        self.settings = settings or PriceSettings()
        self._providers: dict[ProviderType, BasePriceProvider] = {
            provider_type: create_provider(
                provider_type,
                provider_settings,
                transport=transport,
                health_check_timeout=self.settings.health_check_timeout,
            )
            for provider_type, provider_settings in self.settings.providers.items()
        }
        self._current = self.settings.default_provider
        self._available: list[ProviderType] = []

    async def initialize(self) -> None:
        """Probe every configured provider and pick the current one."""
        types = list(self._providers)
        results = await asyncio.gather(
            *(self._providers[t].is_available() for t in types),
            return_exceptions=True,
        )
        self._available = [t for t, ok in zip(types, results) if ok is True]

        if self._current not in self._available:
            if self._available:
                logger.warning(
                    "Default provider %s unavailable, using %s",
                    self._current.value,
                    self._available[0].value,
                )
                self._current = self._available[0]
            else:
                logger.warning(
                    "No price providers available, keeping %s as current provider",
                    self._current.value,
                )
        logger.info(
            "Price service ready: current=%s available=%s",
            self._current.value,
            ",".join(t.value for t in self._available) or "none",
        )

    async def get_prices(self, request: PriceRequest) -> PriceResponse:
        """Fetch quotes from the current provider, falling back in order.

        Raises:
            PriceRequestError: If the request is malformed.
        """
        validate_request(request)

        response = await self._try_provider(self._current, request)
        if response.success:
            return response

        errors = list(response.errors)
        for fallback in self.settings.fallback_providers:
            if fallback == self._current or fallback not in self._available:
                continue
            logger.info("Trying fallback price provider %s", fallback.value)
            response = await self._try_provider(fallback, request)
            if response.success:
                self._current = fallback
                return response
            errors.extend(response.errors)

        return PriceResponse.failure(response.source, *errors)

    async def get_prices_with_provider(
        self, provider_type: ProviderType, request: PriceRequest
    ) -> PriceResponse:
        """Fetch quotes from one provider without fallback.

        Raises:
            PriceRequestError: If the request is malformed.
            ProviderNotAvailableError: If the provider is not configured.
        """
        validate_request(request)
        provider_type = self._require_configured(provider_type)
        return await self._try_provider(provider_type, request)

    async def get_price(self, symbol: str, currency: str = "USD") -> Optional[PriceQuote]:
        response = await self.get_prices(PriceRequest(symbols=[symbol.upper()], currency=currency))
        if response.success and response.data:
            return response.data[0]
        return None

    async def get_multiple_prices(self, symbols: list[str], currency: str = "USD") -> list[PriceQuote]:
        response = await self.get_prices(
            PriceRequest(symbols=[s.upper() for s in symbols], currency=currency)
        )
        return response.data if response.success else []

    @property
    def current_provider(self) -> ProviderType:
        return self._current

    @property
    def available_providers(self) -> list[ProviderType]:
        return list(self._available)

    def set_provider(self, provider_type: ProviderType) -> None:
        """Select the current provider explicitly.

        Raises:
            ProviderNotAvailableError: If the provider is not configured.
        """
        self._current = self._require_configured(provider_type)
        logger.info("Price provider set to %s", self._current.value)

    def is_provider_available(self, provider_type: ProviderType) -> bool:
        return provider_type in self._available

    def _require_configured(self, provider_type: ProviderType) -> ProviderType:
        try:
            provider_type = ProviderType(provider_type)
        except ValueError:
            raise ProviderNotAvailableError(str(provider_type)) from None
        if provider_type not in self._providers:
            raise ProviderNotAvailableError(provider_type.value)
        return provider_type

    async def _try_provider(self, provider_type: ProviderType, request: PriceRequest) -> PriceResponse:
        provider = self._providers.get(provider_type)
        if provider is None:
            return PriceResponse.failure(provider_type.value, f"Provider not configured: {provider_type.value}")
        response = await provider.get_prices(request)
        if not response.success:
            logger.warning(
                "Provider %s failed for %s: %s",
                provider_type.value,
                ",".join(request.symbols),
                "; ".join(response.errors),
            )
        return response

    async def aclose(self) -> None:
        await asyncio.gather(*(p.aclose() for p in self._providers.values()))
