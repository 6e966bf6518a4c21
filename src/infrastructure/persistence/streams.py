"""
infrastructure.persistence.streams - Redis Streams with consumer groups.

Implements the StreamBroker port: XADD with a capped length, XGROUP CREATE,
XREADGROUP for new entries only, and XACK.
"""

from __future__ import annotations

import logging
from typing import Any

from redis.exceptions import RedisError, ResponseError

from domain.exceptions import StoreError
from infrastructure.persistence.connection import RedisConnection

logger = logging.getLogger(__name__)

DEFAULT_MAXLEN = 1_000_000


class RedisStreamService:
    """Async implementation of StreamBroker."""

    def __init__(self, connection: RedisConnection, maxlen: int = DEFAULT_MAXLEN):
        self._conn = connection
        self._maxlen = maxlen

    async def add(self, stream: str, fields: dict[str, str]) -> str:
        """XADD stream MAXLEN = <maxlen> * fields (exact trimming)."""
        try:
            return await self._conn.client.xadd(
                stream,
                fields,
                id="*",
                maxlen=self._maxlen,
                approximate=False,
            )
        except RedisError as e:
            raise StoreError(f"XADD to '{stream}' failed: {e}") from e

    async def create_group(self, stream: str, group: str) -> None:
        """Create the group from the start of the stream; existing groups are kept."""
        try:
            await self._conn.client.xgroup_create(stream, group, id="0-0", mkstream=True)
            logger.info("Consumer group '%s' created on '%s'", group, stream)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise StoreError(f"XGROUP CREATE '{group}' failed: {e}") from e
            logger.warning("Group '%s' already exists on '%s'", group, stream)

    async def read_group(
        self,
        stream: str,
        group: str,
        consumer: str,
        count: int,
        block_ms: int | None = 1000,
    ) -> list[tuple[str, dict[str, str]]]:
        """Read up to `count` never-delivered entries for this consumer."""
        try:
            response = await self._conn.client.xreadgroup(
                group,
                consumer,
                streams={stream: ">"},
                count=count,
                block=block_ms,
            )
        except RedisError as e:
            raise StoreError(f"XREADGROUP on '{stream}' failed: {e}") from e
        return _flatten_entries(response)

    async def ack(self, stream: str, group: str, entry_id: str) -> None:
        try:
            await self._conn.client.xack(stream, group, entry_id)
        except RedisError as e:
            raise StoreError(f"XACK {entry_id} on '{stream}' failed: {e}") from e


def _flatten_entries(response: Any) -> list[tuple[str, dict[str, str]]]:
    """Normalize an XREADGROUP reply (RESP2 list or RESP3 dict) to [(id, fields)]."""
    if not response:
        return []
    if isinstance(response, dict):
        per_stream = [entries for entries in response.values()]
    else:
        per_stream = [entries for _name, entries in response]

    flattened: list[tuple[str, dict[str, str]]] = []
    for entries in per_stream:
        for entry_id, fields in entries:
            flattened.append((entry_id, dict(fields or {})))
    return flattened
