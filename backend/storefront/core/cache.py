"""
Revocation cache on Redis: token blacklist, second-factor codes and cached identities.
Every entry carries its own expiry; nothing here is durable.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from storefront.config import settings

logger = logging.getLogger(__name__)

# Lazy singleton for async Redis client
_redis_client = None

BLACKLIST_SENTINEL = "blacklisted"


def _blacklist_key(token: str) -> str:
    return f"blacklist:{token}"


def _user_key(user_id: int) -> str:
    return f"user:{user_id}"


def _second_factor_key(user_id: int) -> str:
    return f"2fa:{user_id}"


def get_redis():
    """Return async Redis client (lazy connect)."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    from redis.asyncio import from_url

    _redis_client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection (e.g. on app shutdown)."""
    global _redis_client
    if _redis_client is not None:
        try:
            await _redis_client.aclose()
        except Exception as e:
            logger.warning("Revocation cache: error closing Redis: %s", e)
        _redis_client = None


class RevocationCache:
    """Thin wrapper over a redis.asyncio client with decode_responses=True."""

    def __init__(
        self,
        client,
        *,
        user_ttl_seconds: int | None = None,
        second_factor_ttl_seconds: int | None = None,
    ) -> None:
        self.client = client
        self.user_ttl_seconds = user_ttl_seconds or settings.user_cache_ttl_seconds
        self.second_factor_ttl_seconds = second_factor_ttl_seconds or settings.second_factor_ttl_seconds

    async def blacklist_token(self, token: str, ttl: timedelta) -> None:
        """Refuse this token until it would have expired on its own."""
        ttl_ms = max(1, int(ttl.total_seconds() * 1000))
        await self.client.set(_blacklist_key(token), BLACKLIST_SENTINEL, px=ttl_ms)

    async def is_blacklisted(self, token: str) -> bool:
        return await self.client.get(_blacklist_key(token)) == BLACKLIST_SENTINEL

    async def get_cached_user(self, user_id: int) -> str | None:
        return await self.client.get(_user_key(user_id))

    async def cache_user(self, user_id: int, payload: str) -> None:
        await self.client.set(_user_key(user_id), payload, ex=self.user_ttl_seconds)

    async def touch_user(self, user_id: int) -> None:
        """Slide the identity TTL forward; active sessions stay cached."""
        await self.client.expire(_user_key(user_id), self.user_ttl_seconds)

    async def store_second_factor_code(self, user_id: int, code: str) -> None:
        await self.client.set(_second_factor_key(user_id), code, ex=self.second_factor_ttl_seconds)

    async def get_second_factor_code(self, user_id: int) -> str | None:
        return await self.client.get(_second_factor_key(user_id))

    async def delete_second_factor_code(self, user_id: int) -> None:
        await self.client.delete(_second_factor_key(user_id))
