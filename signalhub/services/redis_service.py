"""Redis service for response caching, rate limiting and token revocation.

Redis is optional. When it is not configured or unreachable the service is
constructed with no client: cache reads miss, cache writes are skipped and
rate limits allow every request. Revocation primitives raise
``UnavailableError`` instead so the token service can apply its own policy.
"""

import json
from typing import Any, Optional

import redis.asyncio as redis
import structlog

from signalhub.config import Settings
from signalhub.errors import UnavailableError

logger = structlog.get_logger(__name__)

BLACKLIST_PREFIX = "blacklist:"


async def connect_redis(settings: Settings) -> Optional[redis.Redis]:
    """Create and ping a Redis client.

    Returns:
        Redis client or None if not configured or connection fails (graceful degradation)
    """
    if not settings.redis_url:
        logger.info("redis_skipped", reason="not_configured")
        return None

    client = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    try:
        await client.ping()
        logger.info("redis_connected", url=settings.redis_url.split("@")[-1])
        return client
    except Exception as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        return None


async def close_redis(client: Optional[redis.Redis]) -> None:
    """Close the Redis connection."""
    if client is not None:
        await client.aclose()
        logger.info("redis_connection_closed")


class RedisService:
    """Best-effort key-value operations over an optional Redis client."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client

    @property
    def available(self) -> bool:
        return self.client is not None

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning("redis_ping_failed", error=str(e))
            return False

    async def get_json(self, key: str) -> Optional[Any]:
        """Retrieve a cached JSON value.

        Returns:
            Decoded value or None if not cached or Redis unavailable
        """
        if self.client is None:
            return None

        try:
            data = await self.client.get(key)
            if data:
                return json.loads(data)
            return None
        except Exception as e:
            logger.warning("redis_get_failed", key=key, error=str(e))
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> bool:
        """Cache a JSON-serializable value with TTL.

        Returns:
            True if successful, False otherwise
        """
        if self.client is None:
            return False

        try:
            await self.client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except Exception as e:
            logger.warning("redis_set_failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        if self.client is None:
            return False

        try:
            await self.client.delete(key)
            return True
        except Exception as e:
            logger.warning("redis_delete_failed", key=key, error=str(e))
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern.

        Returns:
            Number of keys deleted (0 if Redis unavailable)
        """
        if self.client is None:
            return 0

        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            if not keys:
                return 0
            return int(await self.client.delete(*keys))
        except Exception as e:
            logger.warning("redis_delete_pattern_failed", pattern=pattern, error=str(e))
            return 0

    async def check_rate_limit(
        self, key: str, limit: int, window_seconds: int
    ) -> tuple[bool, int]:
        """Check and increment a fixed-window counter.

        Args:
            key: Counter identity (e.g. route group plus client IP)
            limit: Maximum requests per window
            window_seconds: Window length

        Returns:
            Tuple of (allowed: bool, remaining: int); remaining is -1 when
            Redis is unavailable
        """
        if self.client is None:
            return True, -1

        try:
            counter_key = f"rate_limit:{key}"
            current = await self.client.get(counter_key)

            if current is None:
                await self.client.setex(counter_key, window_seconds, "1")
                return True, limit - 1

            count = int(current)
            if count >= limit:
                return False, 0

            await self.client.incr(counter_key)
            return True, limit - count - 1
        except Exception as e:
            logger.warning("redis_rate_limit_failed", key=key, error=str(e))
            return True, -1

    # Revocation registry

    async def blacklist_token(self, token: str, ttl_seconds: int) -> None:
        """Record a token as revoked until ``ttl_seconds`` elapse.

        Raises:
            UnavailableError: If Redis is absent or the write fails
        """
        if self.client is None:
            raise UnavailableError("Revocation registry is not configured")

        try:
            await self.client.setex(
                f"{BLACKLIST_PREFIX}{token}", max(int(ttl_seconds), 1), json.dumps(True)
            )
        except Exception as e:
            raise UnavailableError(f"Revocation registry write failed: {e}") from e

    async def is_token_blacklisted(self, token: str) -> bool:
        """Check whether a token has a revocation entry.

        Raises:
            UnavailableError: If Redis is absent or the read fails
        """
        if self.client is None:
            raise UnavailableError("Revocation registry is not configured")

        try:
            return await self.client.get(f"{BLACKLIST_PREFIX}{token}") is not None
        except Exception as e:
            raise UnavailableError(f"Revocation registry read failed: {e}") from e
