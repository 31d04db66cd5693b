"""Tests for the fallback price service."""

import asyncio

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from coinwatch.config import PriceSettings, ProviderType
from coinwatch.errors import PriceRequestError, ProviderNotAvailableError
from coinwatch.models import PriceRequest
from coinwatch.providers import MAX_SYMBOLS_PER_REQUEST, PriceService

GECKO = "api.coingecko.com"
CMC = "pro-api.coinmarketcap.com"
FREE = "api.freecryptoapi.com"


class FakeApis:
    """Routes requests by host and lets tests take providers up or down."""

    def __init__(self, down=(), price=45000.0):
        self.down = set(down)
        self.price = price
        self.calls: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host, path = request.url.host, request.url.path
        self.calls.append((host, path))
        if host in self.down:
            return httpx.Response(503)
        if host == GECKO:
            if path == "/api/v3/coins/list":
                return httpx.Response(200, json=[{"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"}])
            if path == "/api/v3/ping":
                return httpx.Response(200, json={})
            return httpx.Response(200, json={"bitcoin": {"usd": self.price}})
        if host == CMC:
            if path == "/v1/key/info":
                return httpx.Response(200, json={})
            return httpx.Response(200, json={"data": {"BTC": {
                "symbol": "BTC", "name": "Bitcoin", "quote": {"USD": {"price": self.price}},
            }}})
        if host == FREE:
            return httpx.Response(200, json={"status": "success", "symbols": [
                {"symbol": "BTC", "last": str(self.price), "daily_change_percentage": "0"},
            ]})
        return httpx.Response(404)

    def price_calls(self, host: str) -> int:
        return sum(
            1 for h, p in self.calls
            if h == host and p not in ("/api/v3/ping", "/api/v3/coins/list", "/v1/key/info")
        )


def _service(apis: FakeApis, **overrides) -> PriceService:
    return PriceService(PriceSettings(**overrides), transport=httpx.MockTransport(apis))


def _run(coro):
    return asyncio.run(coro)


class TestRequestValidation:
    """
    **Feature: price-alerts, Property: Request Validation**

    *For any* malformed request, the service rejects it before any network call.
    """

    @pytest.mark.parametrize(
        "symbols",
        [[], ["btc"], ["BTC-USD"], ["BTC", ""], ["BTC"] * (MAX_SYMBOLS_PER_REQUEST + 1)],
    )
    def test_rejects_before_network(self, symbols):
        apis = FakeApis()
        with pytest.raises(PriceRequestError):
            _run(_service(apis).get_prices(PriceRequest(symbols=symbols)))
        assert apis.calls == []

    def test_rejects_unsupported_currency(self):
        with pytest.raises(PriceRequestError):
            _run(_service(FakeApis()).get_prices(PriceRequest(symbols=["BTC"], currency="XYZ")))

    @given(symbols=st.lists(st.from_regex(r"[A-Z0-9]{1,8}", fullmatch=True), min_size=1, max_size=100))
    @settings(max_examples=25, deadline=None)
    def test_valid_requests_reach_provider(self, symbols):
        apis = FakeApis()
        _run(_service(apis).get_prices(PriceRequest(symbols=symbols)))
        assert apis.calls


class TestInitialize:
    def test_all_available_keeps_default(self):
        service = _service(FakeApis())
        _run(service.initialize())
        assert service.current_provider == ProviderType.COINGECKO
        assert set(service.available_providers) == set(ProviderType)

    def test_unavailable_default_switches_to_first_available(self):
        service = _service(FakeApis(down={GECKO}))
        _run(service.initialize())
        assert service.current_provider != ProviderType.COINGECKO
        assert service.current_provider in service.available_providers
        assert not service.is_provider_available(ProviderType.COINGECKO)

    def test_nothing_available_keeps_default(self):
        service = _service(FakeApis(down={GECKO, CMC, FREE}))
        _run(service.initialize())
        assert service.current_provider == ProviderType.COINGECKO
        assert service.available_providers == []


class TestFallback:
    """
    **Feature: price-alerts, Property: Sticky Fallback**

    *For any* failing current provider, the first successful fallback serves
    the request and becomes current.
    """

    def test_fallback_serves_and_becomes_current(self):
        apis = FakeApis()
        service = _service(apis)

        async def scenario():
            await service.initialize()
            apis.down.add(GECKO)
            first = await service.get_prices(PriceRequest(symbols=["BTC"]))
            second = await service.get_prices(PriceRequest(symbols=["BTC"]))
            return first, second

        first, second = _run(scenario())
        assert first.success and first.source == "FreeCryptoAPI"
        assert second.success
        assert service.current_provider == ProviderType.FREECRYPTOAPI
        assert apis.price_calls(GECKO) == 1

    def test_fallback_skips_unavailable_providers(self):
        apis = FakeApis(down={FREE})
        service = _service(apis)

        async def scenario():
            await service.initialize()
            apis.calls.clear()
            apis.down.add(GECKO)
            return await service.get_prices(PriceRequest(symbols=["BTC"]))

        response = _run(scenario())
        assert response.source == "CoinMarketCap"
        assert apis.price_calls(FREE) == 0

    def test_all_failing_returns_every_error(self):
        apis = FakeApis()
        service = _service(apis)

        async def scenario():
            await service.initialize()
            apis.down.update({GECKO, CMC, FREE})
            return await service.get_prices(PriceRequest(symbols=["BTC"]))

        response = _run(scenario())
        assert not response.success
        assert len(response.errors) == 3
        assert service.current_provider == ProviderType.COINGECKO


class TestProviderSelection:
    def test_get_prices_with_provider_has_no_fallback(self):
        apis = FakeApis(down={CMC})
        response = _run(_service(apis).get_prices_with_provider(ProviderType.COINMARKETCAP, PriceRequest(symbols=["BTC"])))
        assert not response.success
        assert apis.price_calls(GECKO) == 0

    def test_set_provider_explicitly(self):
        service = _service(FakeApis())
        service.set_provider(ProviderType.COINMARKETCAP)
        assert service.current_provider == ProviderType.COINMARKETCAP

    def test_unconfigured_provider_rejected(self):
        settings_ = PriceSettings()
        providers = dict(settings_.providers)
        providers.pop(ProviderType.COINMARKETCAP)
        service = PriceService(PriceSettings(providers=providers), transport=httpx.MockTransport(FakeApis()))
        with pytest.raises(ProviderNotAvailableError):
            service.set_provider(ProviderType.COINMARKETCAP)

    def test_get_price_and_multiple_prices(self):
        service = _service(FakeApis(price=50000.0))

        async def scenario():
            single = await service.get_price("btc")
            many = await service.get_multiple_prices(["btc"])
            missing = await service.get_price("zzz")
            return single, many, missing

        single, many, missing = _run(scenario())
        assert single.price == 50000.0
        assert [q.symbol for q in many] == ["BTC"]
        assert missing is None
