"""
infrastructure.persistence.connection - Async Redis connection manager.

One connection pool per process, shared by every repository and service.
Responses are decoded to str; vector fields are written as raw bytes and
never read back through this client.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisConnection:
    """Lazily creates a redis.asyncio client on top of a shared pool."""

    def __init__(self, url: str = "redis://localhost:6379"):
        self._url = url
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._pool = redis.ConnectionPool.from_url(self._url, decode_responses=True)
            self._client = redis.Redis(connection_pool=self._pool)
            logger.info("Redis pool created for %s", self._url)
        return self._client

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def is_alive(self) -> bool:
        """Like ping(), but reports an unreachable server as False."""
        try:
            return await self.ping()
        except (redis.RedisError, OSError) as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
