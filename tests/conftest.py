"""
Shared in-memory fakes for the domain ports.

They behave like the Redis-backed implementations closely enough for the
application services to be exercised without a server or a model.
"""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from typing import Optional

import pytest

from domain.entities import StreamEvent
from domain.models import CacheEntry, PostRef, Routing, SearchPost


# ---------------------------------------------------------------------------
# Data stores
# ---------------------------------------------------------------------------

class FakeBroker:
    """Streams as lists; each group reads every entry once."""

    def __init__(self):
        self.streams: dict[str, list[tuple[str, dict[str, str]]]] = defaultdict(list)
        self.groups: dict[tuple[str, str], int] = {}
        self.acked: dict[tuple[str, str], list[str]] = defaultdict(list)

    async def add(self, stream: str, fields: dict[str, str]) -> str:
        entry_id = f"{len(self.streams[stream]) + 1}-0"
        self.streams[stream].append((entry_id, dict(fields)))
        return entry_id

    async def create_group(self, stream: str, group: str) -> None:
        self.groups.setdefault((stream, group), 0)

    async def read_group(self, stream, group, consumer, count):
        start = self.groups.setdefault((stream, group), 0)
        entries = self.streams[stream][start:start + count]
        self.groups[(stream, group)] = start + len(entries)
        return entries

    async def ack(self, stream: str, group: str, entry_id: str) -> None:
        self.acked[(stream, group)].append(entry_id)


class FakeBloom:
    def __init__(self):
        self.filters: dict[str, set[str]] = defaultdict(set)

    async def create(self, name: str) -> None:
        self.filters.setdefault(name, set())

    async def exists(self, name: str, item: str) -> bool:
        return item in self.filters[name]

    async def add(self, name: str, item: str) -> None:
        self.filters[name].add(item)


class FakeCounter:
    """Stands in for both the Count-Min Sketch and the Top-K."""

    def __init__(self, k: int = 15):
        self.k = k
        self.counts: dict[str, Counter] = {}

    async def create(self, name: str) -> None:
        self.counts.setdefault(name, Counter())

    async def incr_by(self, name: str, counts: dict[str, int]) -> list:
        self.counts[name].update(counts)
        return [None] * len(counts)

    async def query(self, name: str, item: str) -> int:
        return self.counts.get(name, Counter())[item]

    async def list(self, name: str) -> list[str]:
        return [item for item, _ in self.counts.get(name, Counter()).most_common(self.k)]


class FakeRegistry:
    def __init__(self, topics: Optional[set[str]] = None):
        self.topics = set(topics or ())

    async def members(self) -> set[str]:
        return set(self.topics)

    async def add(self, topics: list[str]) -> None:
        self.topics.update(topics)


class FakeEvents:
    def __init__(self):
        self.saved: dict[str, StreamEvent] = {}
        self.embeddings: dict[str, list[float]] = {}
        self.topics: dict[str, list[str]] = {}

    async def save(self, event: StreamEvent) -> None:
        self.saved[event.id] = event

    async def save_all(self, events: list[StreamEvent]) -> None:
        for event in events:
            await self.save(event)

    async def get(self, event_id: str) -> Optional[StreamEvent]:
        return self.saved.get(event_id)

    async def update_topics(self, event: StreamEvent, topics: list[str]) -> None:
        self.topics[event.id] = list(topics)

    async def update_embedding(self, event: StreamEvent, vector: list[float]) -> None:
        self.embeddings[event.id] = list(vector)

    async def find_texts_by_topics(self, topics: list[str], limit: int = 50) -> list[str]:
        wanted = set(topics)
        found = [
            self.saved[event_id].text
            for event_id, tags in self.topics.items()
            if wanted & set(tags) and event_id in self.saved
        ]
        return found[:limit]


def cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 1.0 - dot / norm if norm else 1.0


class FakeVectorStore:
    """Brute-force nearest neighbour over (payload, vector) rows."""

    def __init__(self):
        self.rows: list[tuple[object, list[float]]] = []

    async def count(self) -> int:
        return len(self.rows)

    def _nearest(self, vector):
        if not self.rows:
            return None
        return min(
            ((payload, cosine_distance(vector, v)) for payload, v in self.rows),
            key=lambda pair: pair[1],
        )


class FakeRoutings(FakeVectorStore):
    async def save_all(self, routings: list[Routing], vectors: list[list[float]]) -> None:
        self.rows.extend(zip(routings, vectors))

    async def nearest(self, vector):
        return self._nearest(vector)


class FakeCacheStore(FakeVectorStore):
    async def save(self, entry: CacheEntry, vector: list[float]) -> None:
        self.rows.append((entry, vector))

    async def nearest(self, vector):
        return self._nearest(vector)


class FakeExamples(FakeVectorStore):
    async def save_all(self, texts: list[str], vectors: list[list[float]]) -> None:
        self.rows.extend(zip(texts, vectors))

    async def nearest(self, vector):
        return self._nearest(vector)


# ---------------------------------------------------------------------------
# Models and clients
# ---------------------------------------------------------------------------

class FakeEmbedder:
    """One-hot vectors: distinct texts are orthogonal (distance 1).

    `aliases` maps a text onto another text's vector (distance 0).
    """

    dimension = 256

    def __init__(self, aliases: Optional[dict[str, str]] = None):
        self.aliases = aliases or {}
        self.calls: list[list[str]] = []
        self._slots: dict[str, int] = {}

    def vector(self, text: str) -> list[float]:
        slot = self._slots.setdefault(self.aliases.get(text, text), len(self._slots))
        vector = [0.0] * self.dimension
        vector[slot % self.dimension] = 1.0
        return vector

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vector(t) for t in texts]

    async def embed_one(self, text: str) -> list[float]:
        return self.vector(text)


class FakeExtractor:
    """Topics are looked up by substring in `mapping`."""

    def __init__(self, mapping: Optional[dict[str, list[str]]] = None, fail_on: str = ""):
        self.mapping = mapping or {}
        self.fail_on = fail_on

    async def extract(self, text: str, existing_topics: set[str]) -> list[str]:
        from domain.exceptions import TopicExtractionError

        if self.fail_on and self.fail_on in text:
            raise TopicExtractionError("model unavailable")
        for needle, topics in self.mapping.items():
            if needle in text:
                return list(topics)
        return []

    async def process(self, event: StreamEvent) -> list[str]:
        return await self.extract(event.text, set())


class FakeWriter:
    def __init__(self):
        self.calls: list[tuple[str, list[str]]] = []

    async def summarize(self, question: str, posts: list[str]) -> str:
        self.calls.append((question, list(posts)))
        return f"Summary of {len(posts)} posts."

    @staticmethod
    def fallback(question: str) -> str:
        return "I can only talk about AI topics."


class FakeBluesky:
    def __init__(self, posts: Optional[list[SearchPost]] = None, did: str = "did:plc:bot"):
        self.posts = posts or []
        self.did = did
        self.created: list[tuple[str, Optional[PostRef], Optional[PostRef]]] = []
        self.fail_on: set[str] = set()
        self.logins = 0

    async def login(self) -> str:
        self.logins += 1
        return "jwt"

    async def search_posts(self, term: str, hours: int) -> list[SearchPost]:
        return list(self.posts)

    async def create_post(self, text, reply_root=None, reply_parent=None) -> PostRef:
        from domain.exceptions import BlueskyError

        if reply_parent is not None and reply_parent.uri in self.fail_on:
            raise BlueskyError("HTTP 500")
        n = len(self.created) + 1
        self.created.append((text, reply_root, reply_parent))
        return PostRef(uri=f"at://{self.did}/app.bsky.feed.post/reply{n}", cid=f"cid{n}")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def bloom():
    return FakeBloom()


@pytest.fixture
def events():
    return FakeEvents()


@pytest.fixture
def embedder():
    return FakeEmbedder()


def post_fields(rkey: str, text: str, operation: str = "create", did: str = "did:plc:alice") -> dict[str, str]:
    """Stream fields as the ingest stage writes them."""
    return {
        "did": did,
        "createdAt": "2025-05-01T14:03:00.000Z",
        "timeUs": "1746108180000000",
        "text": text,
        "langs": "[en]",
        "operation": operation,
        "rkey": rkey,
        "parentUri": "",
        "rootUri": "",
        "uri": f"at://{did}/app.bsky.feed.post/{rkey}",
    }
