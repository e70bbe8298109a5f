"""Tests for crypto_alerter.prices.coingecko."""

from __future__ import annotations

import httpx
import pytest
import respx

from crypto_alerter.core.config import ProviderConfig
from crypto_alerter.core.exceptions import ProviderUnavailable
from crypto_alerter.prices.coingecko import CoinGeckoAdapter, CoinGeckoPriceProvider
from crypto_alerter.prices.provider import PriceProvider

MARKETS_URL = "https://api.coingecko.com/api/v3/coins/markets"


# --- Fixtures ---


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(request_timeout=5)


@pytest.fixture
async def provider(provider_config):
    async with CoinGeckoPriceProvider(provider_config) as p:
        yield p


@pytest.fixture
def markets_json() -> list[dict]:
    """Trimmed /coins/markets response."""
    return [
        {
            "id": "bitcoin",
            "symbol": "btc",
            "name": "Bitcoin",
            "current_price": 31000,
            "market_cap": 600000000000,
        },
        {
            "id": "ethereum",
            "symbol": "eth",
            "name": "Ethereum",
            "current_price": 2000.5,
            "market_cap": 240000000000,
        },
    ]


# --- Adapter ---


class TestCoinGeckoAdapter:
    def test_adapts_rows(self, markets_json):
        entries = CoinGeckoAdapter().adapt(markets_json)
        assert set(entries) == {"bitcoin", "ethereum"}
        assert entries["bitcoin"].name == "Bitcoin"
        assert entries["bitcoin"].symbol == "btc"
        assert entries["ethereum"].current_price == 2000.5

    def test_skips_null_price(self):
        rows = [{"id": "newcoin", "symbol": "new", "name": "New", "current_price": None}]
        assert CoinGeckoAdapter().adapt(rows) == {}

    def test_skips_rows_without_id(self):
        assert CoinGeckoAdapter().adapt([{"symbol": "x", "current_price": 1}]) == {}

    def test_skips_malformed_price(self):
        rows = [
            {"id": "bad", "symbol": "b", "name": "Bad", "current_price": "n/a"},
            {"id": "neg", "symbol": "n", "name": "Neg", "current_price": -5},
            {"id": "ok", "symbol": "o", "name": "Ok", "current_price": 1},
        ]
        assert list(CoinGeckoAdapter().adapt(rows)) == ["ok"]

    def test_name_falls_back_to_id(self):
        entries = CoinGeckoAdapter().adapt([{"id": "anon", "current_price": 2}])
        assert entries["anon"].name == "anon"

    def test_non_list_payload_raises(self):
        with pytest.raises(ProviderUnavailable, match="Expected a list"):
            CoinGeckoAdapter().adapt({"error": "rate limited"})


# --- Provider ---


class TestFetchPrices:
    async def test_satisfies_protocol(self, provider):
        assert isinstance(provider, PriceProvider)

    def test_protocol_requires_top_coins(self):
        class PricesOnly:
            async def fetch_prices(self, asset_ids):
                return {}

        assert not isinstance(PricesOnly(), PriceProvider)

    @respx.mock
    async def test_single_request_for_union(self, provider, markets_json):
        route = respx.get(MARKETS_URL).mock(
            return_value=httpx.Response(200, json=markets_json)
        )
        snapshot = await provider.fetch_prices(["ethereum", "bitcoin", "bitcoin"])

        assert route.call_count == 1
        params = route.calls[0].request.url.params
        assert params["ids"] == "bitcoin,ethereum"
        assert params["vs_currency"] == "usd"
        assert params["per_page"] == "250"
        assert params["sparkline"] == "false"
        assert snapshot["bitcoin"].current_price == 31000

    @respx.mock(assert_all_called=False)
    async def test_empty_ids_makes_no_request(self, provider):
        route = respx.get(MARKETS_URL)
        assert await provider.fetch_prices([]) == {}
        assert not route.called

    @respx.mock
    async def test_unknown_ids_absent(self, provider, markets_json):
        respx.get(MARKETS_URL).mock(return_value=httpx.Response(200, json=markets_json))
        snapshot = await provider.fetch_prices(["bitcoin", "not-a-coin"])
        assert "not-a-coin" not in snapshot
        assert "bitcoin" in snapshot

    @respx.mock
    async def test_chunks_large_unions(self):
        config = ProviderConfig(page_size=2)
        route = respx.get(MARKETS_URL).mock(return_value=httpx.Response(200, json=[]))
        async with CoinGeckoPriceProvider(config) as p:
            await p.fetch_prices(["a", "b", "c", "d", "e"])

        assert route.call_count == 3
        chunks = [c.request.url.params["ids"] for c in route.calls]
        assert chunks == ["a,b", "c,d", "e"]

    @respx.mock
    async def test_http_error_raises(self, provider):
        respx.get(MARKETS_URL).mock(return_value=httpx.Response(503, text="busy"))
        with pytest.raises(ProviderUnavailable) as exc_info:
            await provider.fetch_prices(["bitcoin"])
        assert exc_info.value.context["status_code"] == 503

    @respx.mock
    async def test_rate_limited_raises(self, provider):
        respx.get(MARKETS_URL).mock(return_value=httpx.Response(429))
        with pytest.raises(ProviderUnavailable, match="429"):
            await provider.fetch_prices(["bitcoin"])

    @respx.mock
    async def test_network_error_raises(self, provider):
        respx.get(MARKETS_URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(ProviderUnavailable) as exc_info:
            await provider.fetch_prices(["bitcoin"])
        assert exc_info.value.context["status_code"] is None

    @respx.mock
    async def test_invalid_json_raises(self, provider):
        respx.get(MARKETS_URL).mock(return_value=httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderUnavailable, match="Invalid JSON"):
            await provider.fetch_prices(["bitcoin"])

    @respx.mock
    async def test_api_key_header_sent(self):
        route = respx.get(MARKETS_URL).mock(return_value=httpx.Response(200, json=[]))
        async with CoinGeckoPriceProvider(ProviderConfig(api_key="demo-key")) as p:
            await p.fetch_prices(["bitcoin"])
        assert route.calls[0].request.headers["x-cg-demo-api-key"] == "demo-key"


class TestTopCoins:
    @respx.mock
    async def test_orders_by_market_cap(self, provider, markets_json):
        route = respx.get(MARKETS_URL).mock(
            return_value=httpx.Response(200, json=markets_json)
        )
        coins = await provider.top_coins(limit=2)

        params = route.calls[0].request.url.params
        assert params["order"] == "market_cap_desc"
        assert params["per_page"] == "2"
        assert "ids" not in params
        assert [c.id for c in coins] == ["bitcoin", "ethereum"]
