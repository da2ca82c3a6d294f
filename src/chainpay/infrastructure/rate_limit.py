"""Fixed-window rate limiter backed by the shared key-value store."""

from __future__ import annotations

import logging
import time

from redis.exceptions import RedisError

from .storage import KeyValueStore

logger = logging.getLogger(__name__)


class KeyValueRateLimiter:
    """Counts attempts per key in fixed windows stored in Redis.

    Every process sees the same counters. A storage failure lets the request
    through: the limiter protects upstream RPC quota, not correctness.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        limit: int,
        window_seconds: int = 60,
        prefix: str = "ratelimit",
    ):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix

    def _key(self, key: str) -> str:
        window = int(time.time() // self.window_seconds)
        return f"{self.prefix}:{key}:{window}"

    async def hit(self, key: str) -> bool:
        if self.limit <= 0:
            return True
        try:
            count = await self.store.incr_with_ttl(self._key(key), self.window_seconds)
        except (RedisError, OSError) as e:
            logger.warning(
                "Rate limiter unavailable; allowing request",
                extra={"key": key, "error": str(e)},
            )
            return True
        return count <= self.limit
