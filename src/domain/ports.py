"""
domain.ports - Abstract interfaces (Protocols) for all system boundaries.

These define WHAT the pipeline needs without specifying HOW. Infrastructure
modules provide concrete implementations. Application services depend only
on these protocols, never on concrete classes.

Using typing.Protocol (structural typing) instead of ABC: any class that
implements the methods satisfies the port without explicit inheritance.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable

from domain.entities import StreamEvent
from domain.models import (
    CacheEntry,
    ClassificationResult,
    PostRef,
    Routing,
    SearchPost,
)


# ---------------------------------------------------------------------------
# Data store ports
# ---------------------------------------------------------------------------

@runtime_checkable
class StreamBroker(Protocol):
    """Append-only streams with consumer groups."""

    async def add(self, stream: str, fields: dict[str, str]) -> str: ...
    async def create_group(self, stream: str, group: str) -> None: ...
    async def read_group(
        self, stream: str, group: str, consumer: str, count: int,
    ) -> list[tuple[str, dict[str, str]]]: ...
    async def ack(self, stream: str, group: str, entry_id: str) -> None: ...


@runtime_checkable
class BloomFilter(Protocol):
    async def create(self, name: str) -> None: ...
    async def exists(self, name: str, item: str) -> bool: ...
    async def add(self, name: str, item: str) -> None: ...


@runtime_checkable
class CountMinSketch(Protocol):
    async def create(self, name: str) -> None: ...
    async def incr_by(self, name: str, counts: dict[str, int]) -> list[int]: ...
    async def query(self, name: str, item: str) -> int: ...


@runtime_checkable
class TopK(Protocol):
    async def create(self, name: str) -> None: ...
    async def incr_by(self, name: str, counts: dict[str, int]) -> list[Optional[str]]: ...
    async def list(self, name: str) -> list[str]: ...


@runtime_checkable
class TopicRegistry(Protocol):
    """The global set of topics seen so far."""

    async def members(self) -> set[str]: ...
    async def add(self, topics: list[str]) -> None: ...


@runtime_checkable
class EventRepository(Protocol):
    async def save(self, event: StreamEvent) -> None: ...
    async def save_all(self, events: list[StreamEvent]) -> None: ...
    async def get(self, event_id: str) -> Optional[StreamEvent]: ...
    async def update_topics(self, event: StreamEvent, topics: list[str]) -> None: ...
    async def update_embedding(self, event: StreamEvent, vector: list[float]) -> None: ...
    async def find_texts_by_topics(self, topics: list[str], limit: int = 50) -> list[str]: ...


@runtime_checkable
class RoutingRepository(Protocol):
    async def count(self) -> int: ...
    async def save_all(self, routings: list[Routing], vectors: list[list[float]]) -> None: ...
    async def nearest(self, vector: list[float]) -> Optional[tuple[Routing, float]]: ...


@runtime_checkable
class SemanticCacheRepository(Protocol):
    async def save(self, entry: CacheEntry, vector: list[float]) -> None: ...
    async def nearest(self, vector: list[float]) -> Optional[tuple[CacheEntry, float]]: ...


# ---------------------------------------------------------------------------
# AI component ports
# ---------------------------------------------------------------------------

@runtime_checkable
class Embedder(Protocol):
    async def embed(self, texts: list[str]) -> list[list[float]]: ...
    async def embed_one(self, text: str) -> list[float]: ...


@runtime_checkable
class ZeroShotPort(Protocol):
    def classify(
        self, text: str, labels: list[str], multi_label: bool = True,
    ) -> ClassificationResult: ...


@runtime_checkable
class ContentClassifier(Protocol):
    """Decide which events are on-topic for the pipeline."""

    async def prepare(self) -> None: ...
    async def is_related(
        self, events: list[StreamEvent],
    ) -> list[tuple[StreamEvent, bool]]: ...


@runtime_checkable
class TopicExtractorPort(Protocol):
    async def extract(self, text: str, existing_topics: set[str]) -> list[str]: ...
    async def process(self, event: StreamEvent) -> list[str]: ...


@runtime_checkable
class AnswerWriterPort(Protocol):
    async def summarize(self, question: str, posts: list[str]) -> str: ...


# ---------------------------------------------------------------------------
# Bluesky ports
# ---------------------------------------------------------------------------

MessageHandler = Callable[[str], Awaitable[None]]


@runtime_checkable
class MessageSource(Protocol):
    """A long-running source of raw text messages (the firehose)."""

    async def run(self, on_message: MessageHandler) -> None: ...
    async def stop(self) -> None: ...


@runtime_checkable
class BlueskyPort(Protocol):
    """The bot account. did is known after login()."""

    did: str

    async def login(self) -> str: ...
    async def search_posts(self, term: str, hours: int) -> list[SearchPost]: ...
    async def create_post(
        self,
        text: str,
        reply_root: Optional[PostRef] = None,
        reply_parent: Optional[PostRef] = None,
    ) -> PostRef: ...
