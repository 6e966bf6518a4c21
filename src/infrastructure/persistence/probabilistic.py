"""
infrastructure.persistence.probabilistic - RedisBloom structures.

Bloom filters deduplicate processed posts, Count-Min Sketches and Top-K
track topic frequencies per hour. Creating a structure that already
exists is not an error.
"""

from __future__ import annotations

import logging
from typing import Optional

from redis.exceptions import RedisError, ResponseError

from domain.exceptions import StoreError
from infrastructure.persistence.connection import RedisConnection

logger = logging.getLogger(__name__)


def _already_exists(error: ResponseError) -> bool:
    message = str(error).lower()
    return "exists" in message


class BloomFilterService:
    """BF.RESERVE / BF.EXISTS / BF.ADD."""

    def __init__(
        self,
        connection: RedisConnection,
        capacity: int = 1_000_000,
        error_rate: float = 0.01,
    ):
        self._conn = connection
        self._capacity = capacity
        self._error_rate = error_rate

    async def create(self, name: str) -> None:
        try:
            await self._conn.client.execute_command(
                "BF.RESERVE", name, self._error_rate, self._capacity,
            )
            logger.info("Bloom filter %s created", name)
        except ResponseError as e:
            if not _already_exists(e):
                raise StoreError(f"BF.RESERVE {name} failed: {e}") from e
            logger.info("Bloom filter %s already exists", name)

    async def exists(self, name: str, item: str) -> bool:
        try:
            return bool(await self._conn.client.execute_command("BF.EXISTS", name, item))
        except RedisError as e:
            raise StoreError(f"BF.EXISTS {name} failed: {e}") from e

    async def add(self, name: str, item: str) -> None:
        try:
            await self._conn.client.execute_command("BF.ADD", name, item)
        except RedisError as e:
            raise StoreError(f"BF.ADD {name} failed: {e}") from e


class CountMinSketchService:
    """CMS.INITBYDIM / CMS.INCRBY / CMS.QUERY."""

    def __init__(self, connection: RedisConnection, width: int = 3000, depth: int = 10):
        self._conn = connection
        self._width = width
        self._depth = depth

    async def create(self, name: str) -> None:
        try:
            await self._conn.client.execute_command(
                "CMS.INITBYDIM", name, self._width, self._depth,
            )
        except ResponseError as e:
            if not _already_exists(e):
                raise StoreError(f"CMS.INITBYDIM {name} failed: {e}") from e
            logger.debug("Count-min sketch %s already exists", name)

    async def incr_by(self, name: str, counts: dict[str, int]) -> list[int]:
        if not counts:
            return []
        args: list = []
        for item, count in counts.items():
            args.extend([item, count])
        try:
            result = await self._conn.client.execute_command("CMS.INCRBY", name, *args)
        except RedisError as e:
            raise StoreError(f"CMS.INCRBY {name} failed: {e}") from e
        return [int(v) for v in result]

    async def query(self, name: str, item: str) -> int:
        try:
            result = await self._conn.client.execute_command("CMS.QUERY", name, item)
        except RedisError as e:
            raise StoreError(f"CMS.QUERY {name} failed: {e}") from e
        return int(result[0]) if result else 0


class TopKService:
    """TOPK.RESERVE / TOPK.INCRBY / TOPK.LIST."""

    def __init__(
        self,
        connection: RedisConnection,
        k: int = 15,
        width: int = 2000,
        depth: int = 7,
        decay: float = 0.9,
    ):
        self._conn = connection
        self._k = k
        self._width = width
        self._depth = depth
        self._decay = decay

    async def create(self, name: str) -> None:
        try:
            await self._conn.client.execute_command(
                "TOPK.RESERVE", name, self._k, self._width, self._depth, self._decay,
            )
        except ResponseError as e:
            if not _already_exists(e):
                raise StoreError(f"TOPK.RESERVE {name} failed: {e}") from e
            logger.debug("Top-K %s already exists", name)

    async def incr_by(self, name: str, counts: dict[str, int]) -> list[Optional[str]]:
        """Returns the items expelled from the list (None where nothing was)."""
        if not counts:
            return []
        args: list = []
        for item, count in counts.items():
            args.extend([item, count])
        try:
            return list(await self._conn.client.execute_command("TOPK.INCRBY", name, *args))
        except RedisError as e:
            raise StoreError(f"TOPK.INCRBY {name} failed: {e}") from e

    async def list(self, name: str) -> list[str]:
        try:
            return list(await self._conn.client.execute_command("TOPK.LIST", name))
        except ResponseError as e:
            # Nothing counted yet in this hour
            if "does not exist" in str(e).lower():
                return []
            raise StoreError(f"TOPK.LIST {name} failed: {e}") from e
        except RedisError as e:
            raise StoreError(f"TOPK.LIST {name} failed: {e}") from e
