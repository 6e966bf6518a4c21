"""
infrastructure.persistence.event_repo - Redis hash repository for StreamEvent.

Implements EventRepository. Each event is a hash at StreamEvent:<uri>,
indexed by StreamEventIdx (TAG langs/topics, NUMERIC timeUs, TEXT text,
VECTOR textEmbedding).
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from redis.exceptions import RedisError

from domain.entities import StreamEvent
from domain.exceptions import StoreError
from infrastructure.persistence.connection import RedisConnection
from infrastructure.persistence.search import (
    IndexSpec,
    SearchHit,
    knn,
    parse_search_reply,
    tag_query,
    to_vector_bytes,
)

logger = logging.getLogger(__name__)

TOPIC_SEPARATOR = "|"

_SCALAR_FIELDS = (
    "did", "rkey", "text", "timeUs", "operation",
    "uri", "parentUri", "rootUri", "langs", "topics",
)


def event_index_spec(dimension: int) -> IndexSpec:
    return IndexSpec(
        name="StreamEventIdx",
        prefix="StreamEvent:",
        vector_field="textEmbedding",
        dimension=dimension,
        schema=(
            "text", "TEXT",
            "langs", "TAG", "SEPARATOR", ",",
            "topics", "TAG", "SEPARATOR", TOPIC_SEPARATOR,
            "timeUs", "NUMERIC", "SORTABLE",
        ),
    )


class RedisEventRepository:
    """Async Redis implementation of EventRepository."""

    def __init__(self, connection: RedisConnection, spec: IndexSpec):
        self._conn = connection
        self._spec = spec

    @property
    def spec(self) -> IndexSpec:
        return self._spec

    async def save(self, event: StreamEvent) -> None:
        try:
            await self._conn.client.hset(self._spec.key(event.id), mapping=self._to_mapping(event))
        except RedisError as e:
            raise StoreError(f"Saving event {event.id} failed: {e}") from e

    async def save_all(self, events: list[StreamEvent]) -> None:
        if not events:
            return
        try:
            async with self._conn.client.pipeline(transaction=False) as pipe:
                for event in events:
                    pipe.hset(self._spec.key(event.id), mapping=self._to_mapping(event))
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"Saving {len(events)} events failed: {e}") from e

    async def get(self, event_id: str) -> Optional[StreamEvent]:
        try:
            values = await self._conn.client.hmget(self._spec.key(event_id), list(_SCALAR_FIELDS))
        except RedisError as e:
            raise StoreError(f"Loading event {event_id} failed: {e}") from e
        if all(v is None for v in values):
            return None
        return self._from_mapping(event_id, dict(zip(_SCALAR_FIELDS, values)))

    async def update_topics(self, event: StreamEvent, topics: list[str]) -> None:
        event.topics = list(topics)
        try:
            await self._conn.client.hset(
                self._spec.key(event.id), "topics", TOPIC_SEPARATOR.join(topics),
            )
        except RedisError as e:
            raise StoreError(f"Updating topics of {event.id} failed: {e}") from e

    async def update_embedding(self, event: StreamEvent, vector: list[float]) -> None:
        event.text_embedding = list(vector)
        try:
            await self._conn.client.hset(
                self._spec.key(event.id), self._spec.vector_field, to_vector_bytes(vector),
            )
        except RedisError as e:
            raise StoreError(f"Updating embedding of {event.id} failed: {e}") from e

    async def find_texts_by_topics(self, topics: list[str], limit: int = 50) -> list[str]:
        """Texts of events tagged with any of `topics`, newest first."""
        topics = [t for t in topics if t]
        if not topics:
            return []
        try:
            reply = await self._conn.client.execute_command(
                "FT.SEARCH", self._spec.name, tag_query("topics", topics),
                "SORTBY", "timeUs", "DESC",
                "RETURN", 1, "text",
                "LIMIT", 0, limit,
                "DIALECT", 2,
            )
        except RedisError as e:
            raise StoreError(f"Topic search failed: {e}") from e
        return [hit.fields.get("text", "") for hit in parse_search_reply(reply) if hit.fields.get("text")]

    async def similar(self, vector: Sequence[float], k: int = 5) -> list[SearchHit]:
        return await knn(self._conn, self._spec, vector, k, return_fields=("uri", "text"))

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_mapping(event: StreamEvent) -> dict[str, str | bytes]:
        mapping: dict[str, str | bytes] = {
            "did": event.did,
            "rkey": event.rkey,
            "text": event.text,
            "timeUs": str(event.time_us),
            "operation": event.operation,
            "uri": event.uri,
            "parentUri": event.parent_uri,
            "rootUri": event.root_uri,
            "langs": ",".join(event.langs),
        }
        # Topics and vectors are written by later stages; never blank them here
        if event.topics:
            mapping["topics"] = TOPIC_SEPARATOR.join(event.topics)
        if event.text_embedding is not None:
            mapping["textEmbedding"] = to_vector_bytes(event.text_embedding)
        return mapping

    @staticmethod
    def _from_mapping(event_id: str, data: dict[str, Optional[str]]) -> StreamEvent:
        def _get(name: str) -> str:
            return data.get(name) or ""

        langs = [lang for lang in _get("langs").split(",") if lang]
        topics = [topic for topic in _get("topics").split(TOPIC_SEPARATOR) if topic]
        try:
            time_us = int(_get("timeUs") or 0)
        except ValueError:
            time_us = 0
        return StreamEvent(
            id=event_id,
            did=_get("did"),
            rkey=_get("rkey"),
            text=_get("text"),
            time_us=time_us,
            operation=_get("operation"),
            uri=_get("uri"),
            parent_uri=_get("parentUri"),
            root_uri=_get("rootUri"),
            langs=langs,
            topics=topics,
        )
