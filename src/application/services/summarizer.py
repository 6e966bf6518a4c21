"""
application.services.summarizer - Stored posts relevant to a question.

The question goes through the same topic extractor as the posts, so it is
mapped onto the topic names already in use, and then posts tagged with
any of those topics are fetched.
"""

from __future__ import annotations

import logging

from domain.ports import EventRepository, TopicExtractorPort, TopicRegistry

logger = logging.getLogger(__name__)


class PostSummarizer:
    def __init__(
        self,
        extractor: TopicExtractorPort,
        registry: TopicRegistry,
        events: EventRepository,
        limit: int = 50,
    ):
        self._extractor = extractor
        self._registry = registry
        self._events = events
        self._limit = limit

    async def related_posts(self, question: str) -> list[str]:
        topics = await self._extractor.extract(question, await self._registry.members())
        logger.info("Query topics: %s", topics)
        if not topics:
            return []
        return await self._events.find_texts_by_topics(topics, limit=self._limit)
