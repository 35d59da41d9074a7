import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.networks import get_network
from .base import PriceOracle

logger = logging.getLogger(__name__)


# Coingecko coin id per native symbol
NATIVE_COIN_IDS: Dict[str, str] = {
    "ETH": "ethereum",
}


class StaticPriceOracle(PriceOracle):
    """Fixed native price, for test networks and offline use"""

    name = "static"

    def __init__(self, price: Optional[Decimal] = None):
        self.price = settings.mock_native_usd_price if price is None else price

    async def ready(self) -> bool:
        return self.price is not None

    async def native_asset_usd_price(self, network_id: int) -> Optional[Decimal]:
        return self.price


class CoingeckoPriceOracle(PriceOracle):
    """Coingecko simple-price lookups for native assets"""

    name = "coingecko"
    timeout_s = 15

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.coingecko_api_key
        self.base_url = "https://api.coingecko.com/api/v3"
        self._client = client

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["X-CG-Demo-API-Key"] = self.api_key
        return headers

    async def ready(self) -> bool:
        return settings.enable_coingecko  # API key is optional for basic tier

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {
                "status": "unavailable",
                "reason": "Provider disabled"
            }
        try:
            response = await self._get("/ping", {})
            return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except httpx.HTTPError as e:
            return {"status": "error", "reason": str(e)}

    async def _get(self, path: str, params: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            response = await self._client.get(
                f"{self.base_url}{path}", headers=self._build_headers(), params=params, timeout=self.timeout_s
            )
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{self.base_url}{path}", headers=self._build_headers(), params=params, timeout=self.timeout_s
                )
        response.raise_for_status()
        return response

    async def native_asset_usd_price(self, network_id: int) -> Optional[Decimal]:
        """USD price of the network's native asset; None when unknown or unreachable."""
        network = get_network(network_id)
        coin_id = NATIVE_COIN_IDS.get(network.native_symbol) if network else None
        if coin_id is None:
            return None

        try:
            response = await self._get("/simple/price", {"ids": coin_id, "vs_currencies": "usd"})
            price = response.json().get(coin_id, {}).get("usd")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Coingecko price lookup failed for {coin_id}: {e}")
            return None

        return Decimal(str(price)) if price is not None else None


def get_price_oracle() -> PriceOracle:
    """Coingecko when enabled, otherwise the static configured price."""
    if settings.enable_coingecko:
        return CoingeckoPriceOracle()
    return StaticPriceOracle()
