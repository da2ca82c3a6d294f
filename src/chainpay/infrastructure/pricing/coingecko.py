"""Native asset price lookup against the CoinGecko simple-price endpoint."""

from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from ..http.http_client import AsyncHttpClient, HttpRequestError, HttpResponseError

logger = logging.getLogger(__name__)

PRICE_CACHE_SECONDS = 60


class CoinGeckoPriceOracle:
    """
    Returns the USD price of SOL.

    A failed or malformed lookup falls back to a fixed price so intent creation
    never blocks on the price feed. Successful lookups are cached briefly.
    """

    def __init__(
        self,
        price_url: str,
        fallback_price_usd: Decimal = Decimal(100),
        *,
        cache_seconds: int = PRICE_CACHE_SECONDS,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.price_url = price_url
        self.fallback_price_usd = fallback_price_usd
        self.cache_seconds = cache_seconds
        self._http = AsyncHttpClient(price_url, timeout=timeout, transport=transport)
        self._cached: Optional[tuple[float, Decimal]] = None

    async def get_native_price_usd(self) -> Decimal:
        if self._cached and time.monotonic() - self._cached[0] < self.cache_seconds:
            return self._cached[1]

        try:
            response = await self._http.get("")
            price = Decimal(str(response.json()["solana"]["usd"]))
        except (HttpRequestError, HttpResponseError) as e:
            logger.warning(
                "Price lookup failed; using fallback",
                extra={"error": str(e), "fallback": str(self.fallback_price_usd)},
            )
            return self.fallback_price_usd
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.warning(
                "Unexpected price payload; using fallback",
                extra={"error": str(e), "fallback": str(self.fallback_price_usd)},
            )
            return self.fallback_price_usd

        if price <= 0:
            return self.fallback_price_usd

        self._cached = (time.monotonic(), price)
        logger.info("native_price", extra={"usd": str(price)})
        return price

    async def aclose(self) -> None:
        await self._http.aclose()
