"""
application.services.filtering - Stage 2: 'jetstream' → 'filtered-events'.

Reads batches with the filter-group consumer group, drops empty and
delete events, asks the ContentClassifier which of the rest are on-topic,
and republishes and stores those. Every entry read is acked once, also
when classification or publishing failed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from application.dto import BatchStats
from application.services.consumer import consume_until_stopped
from domain.entities import StreamEvent, is_candidate
from domain.exceptions import ClassificationError, EmbeddingError, StoreError
from domain.ports import ContentClassifier, EventRepository, StreamBroker

logger = logging.getLogger(__name__)

SOURCE_STREAM = "jetstream"
FILTERED_STREAM = "filtered-events"
FILTER_GROUP = "filter-group"
FILTER_CONSUMER = "filter-consumer-1"


class FilterService:
    """Single-consumer filter loop."""

    def __init__(
        self,
        broker: StreamBroker,
        classifier: ContentClassifier,
        events: EventRepository,
        read_count: int = 5,
        consumer: str = FILTER_CONSUMER,
    ):
        self._broker = broker
        self._classifier = classifier
        self._events = events
        self._read_count = read_count
        self._consumer = consumer

    async def setup(self) -> None:
        await self._broker.create_group(SOURCE_STREAM, FILTER_GROUP)
        await self._classifier.prepare()

    async def process_batch(self) -> BatchStats:
        """Handle one read of up to read_count entries."""
        entries = await self._broker.read_group(
            SOURCE_STREAM, FILTER_GROUP, self._consumer, self._read_count,
        )
        if not entries:
            return BatchStats()

        candidates: list[StreamEvent] = []
        for entry_id, fields in entries:
            event = StreamEvent.from_fields(fields, entry_id)
            if is_candidate(event):
                candidates.append(event)
            else:
                await self._ack(entry_id)

        related: list[StreamEvent] = []
        for event, is_related in await self._classify(candidates):
            try:
                if is_related:
                    await self._broker.add(FILTERED_STREAM, event.to_fields())
                    logger.info("Filtered event: %s", event.uri)
                    related.append(event)
            except StoreError:
                logger.exception("Publishing %s failed", event.uri)
            finally:
                await self._ack(event.stream_entry_id)

        if related:
            try:
                await self._events.save_all(related)
            except StoreError:
                logger.exception("Storing %d filtered events failed", len(related))

        stats = BatchStats(processed=len(entries), stored=len(related))
        logger.info("Processed %d events, stored %d filtered events", stats.processed, stats.stored)
        return stats

    async def _classify(self, candidates: list[StreamEvent]) -> list[tuple[StreamEvent, bool]]:
        """Classifier verdicts; a failing classifier rejects the whole batch."""
        if not candidates:
            return []
        try:
            return await self._classifier.is_related(candidates)
        except (ClassificationError, EmbeddingError, StoreError):
            logger.exception("Classifying %d events failed", len(candidates))
            return [(event, False) for event in candidates]

    async def _ack(self, entry_id: str) -> None:
        await self._broker.ack(SOURCE_STREAM, FILTER_GROUP, entry_id)

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        await self.setup()
        await consume_until_stopped(self.process_batch, stop or asyncio.Event(), self._consumer)
