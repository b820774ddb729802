import logging
from typing import Optional

import httpx

from dashboard.core.cache import TimedCache, price_key
from dashboard.core.errors import UpstreamUnavailable
from dashboard.core.models import Fallback, Fetched, Ok

logger = logging.getLogger(__name__)

COINGECKO_API_URL = "https://api.coingecko.com/api/v3"
PRICE_TIMEOUT = 5.0
FALLBACK_PRICE = 3000.0


class CoinGeckoClient:
    """
    Quotes the native coin in USD.
    1. TTL Caching (shared dashboard cache)
    2. Fixed fallback price when the API is down, never raises
    """

    def __init__(
        self,
        cache: TimedCache,
        asset_id: str = "ethereum",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cache = cache
        self.asset_id = asset_id
        self.transport = transport

    async def get_native_price(self) -> float:
        result = await self.fetch_native_price()
        return result.value

    async def fetch_native_price(self) -> Fetched[float]:
        key = price_key(self.asset_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("[PRICE] Using cached %s price: %s", self.asset_id, cached)
            return Ok(cached)

        logger.info("[PRICE] Fetching %s price from CoinGecko...", self.asset_id)
        try:
            price = await self._request_price()
        except (httpx.HTTPError, UpstreamUnavailable) as e:
            logger.warning(
                "[PRICE] Price fetch failed, using fallback %s: %s", FALLBACK_PRICE, e
            )
            return Fallback(FALLBACK_PRICE, reason=str(e))

        self.cache.set(key, price)
        return Ok(price)

    async def _request_price(self) -> float:
        async with httpx.AsyncClient(
            timeout=PRICE_TIMEOUT, transport=self.transport
        ) as client:
            resp = await client.get(
                f"{COINGECKO_API_URL}/simple/price",
                params={"ids": self.asset_id, "vs_currencies": "usd"},
            )

        if resp.status_code == 429:
            raise UpstreamUnavailable("Rate limited by CoinGecko")
        if resp.status_code != 200:
            raise UpstreamUnavailable(f"CoinGecko returned {resp.status_code}")

        try:
            price = float(resp.json()[self.asset_id]["usd"])
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamUnavailable(f"Malformed price response: {e}") from e

        if price <= 0:
            raise UpstreamUnavailable(f"Non-positive price: {price}")
        return price
