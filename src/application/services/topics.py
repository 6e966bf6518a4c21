"""
application.services.topics - Stage 3b: topic extraction and counting.

Consumers of topic-extraction-group ask the LLM for each post's AI topics,
tag the stored event with them and count them in this hour's Count-Min
Sketch and Top-K. Every entry read is acked once, also when extraction
or counting failed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from application.dto import BatchStats
from application.services.consumer import consume_until_stopped, consumer_names
from domain.entities import StreamEvent
from domain.exceptions import StoreError, TopicExtractionError
from domain.models import cms_key, topk_key
from domain.ports import (
    BloomFilter,
    CountMinSketch,
    EventRepository,
    StreamBroker,
    TopK,
    TopicExtractorPort,
)

logger = logging.getLogger(__name__)

FILTERED_STREAM = "filtered-events"
TOPICS_GROUP = "topic-extraction-group"
TOPICS_BLOOM = "topic-extraction-dedup-bf"


class TopicService:
    def __init__(
        self,
        broker: StreamBroker,
        bloom: BloomFilter,
        cms: CountMinSketch,
        topk: TopK,
        extractor: TopicExtractorPort,
        events: EventRepository,
        num_consumers: int = 4,
        read_count: int = 5,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._broker = broker
        self._bloom = bloom
        self._cms = cms
        self._topk = topk
        self._extractor = extractor
        self._events = events
        self._num_consumers = num_consumers
        self._read_count = read_count
        self._clock = clock

    async def setup(self) -> None:
        await self._broker.create_group(FILTERED_STREAM, TOPICS_GROUP)
        await self._bloom.create(TOPICS_BLOOM)

    async def process_batch(self, consumer: str) -> BatchStats:
        entries = await self._broker.read_group(
            FILTERED_STREAM, TOPICS_GROUP, consumer, self._read_count,
        )
        if not entries:
            return BatchStats()

        now = self._clock()
        cms_name, topk_name = cms_key(now), topk_key(now)
        try:
            await self._cms.create(cms_name)
            await self._topk.create(topk_name)
        except StoreError:
            logger.exception("Creating the counters for %s failed", cms_name)

        tagged = 0
        for entry_id, fields in entries:
            event = StreamEvent.from_fields(fields, entry_id)
            try:
                if not await self._bloom.exists(TOPICS_BLOOM, event.uri):
                    if await self._tag(event, cms_name, topk_name):
                        tagged += 1
            except StoreError:
                logger.exception("Counting the topics of %s failed", event.uri)
            finally:
                await self._broker.ack(FILTERED_STREAM, TOPICS_GROUP, entry_id)
                await self._remember(event)

        logger.info("[%s] tagged %d of %d events", consumer, tagged, len(entries))
        return BatchStats(processed=len(entries), stored=tagged)

    async def _remember(self, event: StreamEvent) -> None:
        try:
            await self._bloom.add(TOPICS_BLOOM, event.uri)
        except StoreError:
            logger.warning("Could not mark %s as tagged", event.uri)

    async def _tag(self, event: StreamEvent, cms_name: str, topk_name: str) -> bool:
        try:
            topics = await self._extractor.process(event)
        except TopicExtractionError:
            logger.exception("Topic extraction failed for %s", event.uri)
            return False
        if not topics:
            return False
        counts = {topic: 1 for topic in topics}
        await self._cms.incr_by(cms_name, counts)
        await self._topk.incr_by(topk_name, counts)
        await self._events.update_topics(event, topics)
        logger.debug("Topics for %s: %s", event.uri, ", ".join(topics))
        return True

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        stop = stop or asyncio.Event()
        await self.setup()
        await asyncio.gather(*(
            consume_until_stopped(
                lambda name=name: self.process_batch(name), stop, name,
            )
            for name in consumer_names(self._num_consumers)
        ))
