from decimal import Decimal

import httpx
import pytest

from wrapflow.config import settings
from wrapflow.core.networks import BASE_SEPOLIA
from wrapflow.providers import CoingeckoPriceOracle, StaticPriceOracle, get_price_oracle


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_static_price():
    oracle = StaticPriceOracle(Decimal("2500"))

    assert await oracle.ready()
    assert await oracle.native_asset_usd_price(BASE_SEPOLIA) == Decimal("2500")


@pytest.mark.asyncio
async def test_coingecko_price_with_api_key(monkeypatch):
    monkeypatch.setattr(settings, "coingecko_api_key", "demo-key")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"ethereum": {"usd": 3123.45}})

    oracle = CoingeckoPriceOracle(client=_client(handler))
    price = await oracle.native_asset_usd_price(BASE_SEPOLIA)

    assert price == Decimal("3123.45")
    assert seen["headers"]["X-CG-Demo-API-Key"] == "demo-key"
    assert seen["params"] == {"ids": "ethereum", "vs_currencies": "usd"}


@pytest.mark.asyncio
async def test_coingecko_failure_returns_none():
    oracle = CoingeckoPriceOracle(client=_client(lambda request: httpx.Response(429, json={})))

    assert await oracle.native_asset_usd_price(BASE_SEPOLIA) is None


@pytest.mark.asyncio
async def test_unknown_network_has_no_price():
    oracle = CoingeckoPriceOracle(client=_client(lambda request: httpx.Response(500)))

    assert await oracle.native_asset_usd_price(1) is None


def test_oracle_selection(monkeypatch):
    monkeypatch.setattr(settings, "enable_coingecko", False)
    assert isinstance(get_price_oracle(), StaticPriceOracle)

    monkeypatch.setattr(settings, "enable_coingecko", True)
    assert isinstance(get_price_oracle(), CoingeckoPriceOracle)
