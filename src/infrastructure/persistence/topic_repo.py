"""
infrastructure.persistence.topic_repo - Global topic set.

Implements TopicRegistry on a plain Redis set ("topics"). The topic
extractor reads it to reuse existing names and adds whatever it finds.
"""

from __future__ import annotations

import logging

from redis.exceptions import RedisError

from domain.exceptions import StoreError
from infrastructure.persistence.connection import RedisConnection

logger = logging.getLogger(__name__)

TOPICS_KEY = "topics"


class RedisTopicRegistry:
    """Async implementation of TopicRegistry."""

    def __init__(self, connection: RedisConnection, key: str = TOPICS_KEY):
        self._conn = connection
        self._key = key

    async def members(self) -> set[str]:
        try:
            return set(await self._conn.client.smembers(self._key))
        except RedisError as e:
            raise StoreError(f"SMEMBERS {self._key} failed: {e}") from e

    async def add(self, topics: list[str]) -> None:
        if not topics:
            return
        try:
            await self._conn.client.sadd(self._key, *topics)
        except RedisError as e:
            raise StoreError(f"SADD {self._key} failed: {e}") from e
