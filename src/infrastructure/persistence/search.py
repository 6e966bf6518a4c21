"""
infrastructure.persistence.search - RediSearch helpers shared by repositories.

Hash documents are indexed with a schema declared as an IndexSpec. Vectors
are stored as little-endian float32 bytes and compared with COSINE
distance (0 = identical, 2 = opposite).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np
from redis.exceptions import RedisError, ResponseError

from domain.exceptions import StoreError
from infrastructure.persistence.connection import RedisConnection

logger = logging.getLogger(__name__)

_TAG_SPECIAL = re.compile(r"([,.<>{}\[\]\"':;!@#$%^&*()\-+=~|/\\ ])")


def to_vector_bytes(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype="<f4").tobytes()


def from_vector_bytes(raw: bytes) -> list[float]:
    return np.frombuffer(raw, dtype="<f4").astype(float).tolist()


def escape_tag(value: str) -> str:
    """Escape a value for use inside a TAG query: @field:{...}."""
    return _TAG_SPECIAL.sub(r"\\\1", value)


def tag_query(field_name: str, values: Sequence[str]) -> str:
    escaped = [escape_tag(v) for v in values if v]
    return f"@{field_name}:{{{'|'.join(escaped)}}}"


@dataclass(frozen=True)
class IndexSpec:
    """Schema of one RediSearch index over hashes sharing a key prefix.

    schema holds the FT.CREATE SCHEMA arguments except the vector field,
    which is declared by vector_field/dimension.
    """
    name: str
    prefix: str
    vector_field: str
    dimension: int
    schema: tuple[str, ...] = field(default_factory=tuple)

    def create_args(self) -> list[Any]:
        args: list[Any] = [
            "FT.CREATE", self.name,
            "ON", "HASH",
            "PREFIX", 1, self.prefix,
            "SCHEMA", *self.schema,
            self.vector_field, "VECTOR", "HNSW", 6,
            "TYPE", "FLOAT32",
            "DIM", self.dimension,
            "DISTANCE_METRIC", "COSINE",
        ]
        return args

    def key(self, doc_id: str) -> str:
        return self.prefix + doc_id


async def ensure_index(connection: RedisConnection, spec: IndexSpec) -> bool:
    """Create the index unless it exists. Returns True when created."""
    client = connection.client
    try:
        await client.execute_command("FT.INFO", spec.name)
        logger.debug("Index %s already exists", spec.name)
        return False
    except ResponseError as e:
        message = str(e).lower()
        if "unknown index" not in message and "no such index" not in message:
            raise StoreError(f"FT.INFO {spec.name} failed: {e}") from e

    try:
        await client.execute_command(*spec.create_args())
    except RedisError as e:
        raise StoreError(f"FT.CREATE {spec.name} failed: {e}") from e
    logger.info("Index %s created (prefix=%s, dim=%d)", spec.name, spec.prefix, spec.dimension)
    return True


@dataclass(frozen=True)
class SearchHit:
    key: str
    fields: dict[str, str]

    @property
    def distance(self) -> float:
        return float(self.fields.get("distance", "inf"))


def parse_search_reply(reply: Any) -> list[SearchHit]:
    """Parse a RESP2 FT.SEARCH reply: [total, key, [f, v, ...], key, [...], ...]."""
    if not reply:
        return []
    hits: list[SearchHit] = []
    items = list(reply[1:])
    for i in range(0, len(items) - 1, 2):
        key, flat = items[i], items[i + 1] or []
        fields = {flat[j]: flat[j + 1] for j in range(0, len(flat) - 1, 2)}
        hits.append(SearchHit(key=key, fields=fields))
    return hits


async def knn(
    connection: RedisConnection,
    spec: IndexSpec,
    vector: Sequence[float],
    k: int,
    return_fields: Sequence[str],
    prefilter: str = "*",
) -> list[SearchHit]:
    """Nearest neighbours of `vector`, closest first, with a 'distance' field."""
    base = prefilter if prefilter == "*" else f"({prefilter})"
    query = f"{base}=>[KNN {k} @{spec.vector_field} $vec AS distance]"
    fields = [*return_fields, "distance"]
    try:
        reply = await connection.client.execute_command(
            "FT.SEARCH", spec.name, query,
            "PARAMS", 2, "vec", to_vector_bytes(vector),
            "SORTBY", "distance", "ASC",
            "RETURN", len(fields), *fields,
            "LIMIT", 0, k,
            "DIALECT", 2,
        )
    except RedisError as e:
        raise StoreError(f"KNN search on {spec.name} failed: {e}") from e
    return parse_search_reply(reply)


async def count_docs(connection: RedisConnection, spec: IndexSpec) -> int:
    try:
        reply = await connection.client.execute_command(
            "FT.SEARCH", spec.name, "*", "LIMIT", 0, 0,
        )
    except RedisError as e:
        raise StoreError(f"Count on {spec.name} failed: {e}") from e
    return int(reply[0]) if reply else 0


def nearest_hit(hits: list[SearchHit]) -> Optional[SearchHit]:
    return hits[0] if hits else None
