"""
application.services.enrichment - Stage 3a: embeddings for filtered posts.

NUM_CONSUMERS consumers share the embeddings-group on 'filtered-events'.
A Bloom filter remembers which posts were already embedded so a post seen
twice on the stream is only embedded once. Every entry read is acked once,
also when embedding or storing failed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from application.dto import BatchStats
from application.services.consumer import consume_until_stopped, consumer_names
from domain.entities import StreamEvent
from domain.exceptions import EmbeddingError, StoreError
from domain.ports import BloomFilter, Embedder, EventRepository, StreamBroker

logger = logging.getLogger(__name__)

FILTERED_STREAM = "filtered-events"
EMBEDDINGS_GROUP = "embeddings-group"
EMBEDDINGS_BLOOM = "embeddings-dedup-bf"


class EnrichmentService:
    def __init__(
        self,
        broker: StreamBroker,
        bloom: BloomFilter,
        embedder: Embedder,
        events: EventRepository,
        num_consumers: int = 4,
        read_count: int = 5,
    ):
        self._broker = broker
        self._bloom = bloom
        self._embedder = embedder
        self._events = events
        self._num_consumers = num_consumers
        self._read_count = read_count

    async def setup(self) -> None:
        await self._broker.create_group(FILTERED_STREAM, EMBEDDINGS_GROUP)
        await self._bloom.create(EMBEDDINGS_BLOOM)

    async def process_batch(self, consumer: str) -> BatchStats:
        entries = await self._broker.read_group(
            FILTERED_STREAM, EMBEDDINGS_GROUP, consumer, self._read_count,
        )
        if not entries:
            return BatchStats()

        fresh: list[StreamEvent] = []
        for entry_id, fields in entries:
            event = StreamEvent.from_fields(fields, entry_id)
            if await self._seen(event):
                logger.debug("Already embedded: %s", event.uri)
                await self._broker.ack(FILTERED_STREAM, EMBEDDINGS_GROUP, entry_id)
            else:
                fresh.append(event)

        vectors: list[list[float]] = []
        if fresh:
            try:
                vectors = await self._embedder.embed([e.text for e in fresh])
            except EmbeddingError:
                logger.exception("Embedding %d events failed", len(fresh))

        stored = 0
        for i, event in enumerate(fresh):
            try:
                if i < len(vectors):
                    await self._events.update_embedding(event, vectors[i])
                    stored += 1
            except StoreError:
                logger.exception("Storing the embedding of %s failed", event.uri)
            finally:
                await self._broker.ack(FILTERED_STREAM, EMBEDDINGS_GROUP, event.stream_entry_id)
                await self._remember(event)

        logger.info("[%s] embedded %d of %d events", consumer, stored, len(entries))
        return BatchStats(processed=len(entries), stored=stored)

    async def _seen(self, event: StreamEvent) -> bool:
        try:
            return await self._bloom.exists(EMBEDDINGS_BLOOM, event.uri)
        except StoreError:
            logger.warning("Bloom lookup failed for %s, embedding it anyway", event.uri)
            return False

    async def _remember(self, event: StreamEvent) -> None:
        try:
            await self._bloom.add(EMBEDDINGS_BLOOM, event.uri)
        except StoreError:
            logger.warning("Could not mark %s as embedded", event.uri)

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        stop = stop or asyncio.Event()
        await self.setup()
        await asyncio.gather(*(
            consume_until_stopped(
                lambda name=name: self.process_batch(name), stop, name,
            )
            for name in consumer_names(self._num_consumers)
        ))
