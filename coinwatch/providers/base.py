"""Base price provider interface for coinwatch."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from coinwatch.config import ProviderSettings
from coinwatch.models import PriceRequest, PriceResponse

logger = logging.getLogger(__name__)

USER_AGENT = "coinwatch/0.1"
HEALTH_CHECK_TIMEOUT = 5.0


class BasePriceProvider(ABC):
    """Abstract base class for price provider implementations.

    A provider turns a PriceRequest into a PriceResponse. Failures of any
    kind (HTTP status, timeouts, malformed bodies) are reported through
    ``PriceResponse.success`` and ``errors``, never raised to the caller.
    """

    name: str = "base"

    def __init__(
        self,
        settings: ProviderSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        health_check_timeout: float = HEALTH_CHECK_TIMEOUT,
    ):
        """Initialize the provider.

        Args:
            settings: Base URL, API key and timeout for this provider.
            transport: Optional httpx transport (tests pass a MockTransport).
            health_check_timeout: Timeout for availability probes in seconds.
        """
        self.settings = settings
        self.health_check_timeout = health_check_timeout
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT, **self.auth_headers()},
            timeout=settings.timeout,
            transport=transport,
        )

    def auth_headers(self) -> dict[str, str]:
        """Provider-specific authentication headers."""
        return {}

    @abstractmethod
    async def get_prices(self, request: PriceRequest) -> PriceResponse:
        """Fetch quotes for every symbol in the request.

        Args:
            request: Symbols and quote currency.

        Returns:
            PriceResponse with one quote per symbol the provider knows.
        """
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """Probe the provider with a cheap request.

        Returns:
            True if the provider answered successfully.
        """
        pass

    async def _get_json(self, path: str, params: Optional[dict] = None, timeout: Optional[float] = None):
        response = await self._client.get(
            path,
            params=params,
            timeout=timeout if timeout is not None else self.settings.timeout,
        )
        if response.is_error:
            raise httpx.HTTPStatusError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                request=response.request,
                response=response,
            )
        return response.json()

    def _failure(self, error: Exception) -> PriceResponse:
        message = str(error) or error.__class__.__name__
        logger.warning("%s price request failed: %s", self.name, message)
        return PriceResponse.failure(self.name, message)

    async def aclose(self) -> None:
        await self._client.aclose()
