"""
infrastructure.persistence.vector_repos - Small vector-indexed hash stores.

Routing references, semantic cache entries and filtering examples share
the same shape: a few text fields plus one embedding, looked up by
nearest neighbour.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from redis.exceptions import RedisError

from domain.exceptions import StoreError
from domain.models import CacheEntry, Routing
from infrastructure.persistence.connection import RedisConnection
from infrastructure.persistence.search import (
    IndexSpec,
    count_docs,
    knn,
    nearest_hit,
    to_vector_bytes,
)

logger = logging.getLogger(__name__)


def routing_index_spec(dimension: int) -> IndexSpec:
    return IndexSpec(
        name="RoutingIdx",
        prefix="Routing:",
        vector_field="embedding",
        dimension=dimension,
        schema=("route", "TAG", "text", "TEXT"),
    )


def cache_index_spec(dimension: int) -> IndexSpec:
    return IndexSpec(
        name="SemanticCacheIdx",
        prefix="SemanticCacheEntry:",
        vector_field="embedding",
        dimension=dimension,
        schema=("post", "TEXT"),
    )


def example_index_spec(dimension: int) -> IndexSpec:
    return IndexSpec(
        name="FilteringExampleIdx",
        prefix="FilteringExample:",
        vector_field="embedding",
        dimension=dimension,
        schema=("text", "TEXT"),
    )


class _VectorStore:
    def __init__(self, connection: RedisConnection, spec: IndexSpec):
        self._conn = connection
        self._spec = spec

    @property
    def spec(self) -> IndexSpec:
        return self._spec

    async def count(self) -> int:
        return await count_docs(self._conn, self._spec)

    async def _write(self, rows: list[tuple[dict[str, str], Sequence[float]]]) -> None:
        if not rows:
            return
        try:
            async with self._conn.client.pipeline(transaction=False) as pipe:
                for fields, vector in rows:
                    mapping: dict[str, str | bytes] = dict(fields)
                    mapping[self._spec.vector_field] = to_vector_bytes(vector)
                    pipe.hset(self._spec.key(uuid.uuid4().hex), mapping=mapping)
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"Writing to {self._spec.prefix} failed: {e}") from e


class RedisRoutingRepository(_VectorStore):
    """Reference phrases of each route with their embeddings."""

    async def save_all(self, routings: list[Routing], vectors: list[list[float]]) -> None:
        if len(routings) != len(vectors):
            raise ValueError("routings and vectors must have the same length")
        await self._write([
            ({"text": r.text, "route": r.route, "maxDistance": str(r.max_distance)}, v)
            for r, v in zip(routings, vectors)
        ])
        logger.info("Stored %d routing references", len(routings))

    async def nearest(self, vector: Sequence[float]) -> Optional[tuple[Routing, float]]:
        hit = nearest_hit(await knn(
            self._conn, self._spec, vector, 1,
            return_fields=("text", "route", "maxDistance"),
        ))
        if hit is None:
            return None
        routing = Routing(
            text=hit.fields.get("text", ""),
            route=hit.fields.get("route", ""),
            max_distance=float(hit.fields.get("maxDistance", 0.0)),
        )
        return routing, hit.distance

    async def clear(self) -> int:
        """Delete every stored reference. Returns the number removed."""
        client = self._conn.client
        try:
            keys = [key async for key in client.scan_iter(match=self._spec.prefix + "*")]
            if keys:
                await client.delete(*keys)
        except RedisError as e:
            raise StoreError(f"Clearing {self._spec.prefix} failed: {e}") from e
        return len(keys)


class RedisSemanticCacheRepository(_VectorStore):
    """Question → answer pairs keyed by the question embedding."""

    async def save(self, entry: CacheEntry, vector: Sequence[float]) -> None:
        await self._write([({"post": entry.post, "answer": entry.answer}, vector)])

    async def nearest(self, vector: Sequence[float]) -> Optional[tuple[CacheEntry, float]]:
        hit = nearest_hit(await knn(
            self._conn, self._spec, vector, 1, return_fields=("post", "answer"),
        ))
        if hit is None:
            return None
        entry = CacheEntry(post=hit.fields.get("post", ""), answer=hit.fields.get("answer", ""))
        return entry, hit.distance


class RedisFilteringExampleRepository(_VectorStore):
    """Example posts that define what counts as on-topic."""

    async def save_all(self, texts: list[str], vectors: list[list[float]]) -> None:
        if len(texts) != len(vectors):
            raise ValueError("texts and vectors must have the same length")
        await self._write([({"text": t}, v) for t, v in zip(texts, vectors)])
        logger.info("Stored %d filtering examples", len(texts))

    async def nearest(self, vector: Sequence[float]) -> Optional[tuple[str, float]]:
        hit = nearest_hit(await knn(self._conn, self._spec, vector, 1, return_fields=("text",)))
        if hit is None:
            return None
        return hit.fields.get("text", ""), hit.distance
