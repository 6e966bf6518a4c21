"""
application.services.semantic_cache - Answers reused for similar questions.
"""

from __future__ import annotations

import logging
from typing import Optional

from domain.models import CacheEntry
from domain.ports import Embedder, SemanticCacheRepository

logger = logging.getLogger(__name__)


class SemanticCache:
    def __init__(self, embedder: Embedder, repository: SemanticCacheRepository, max_distance: float = 0.1):
        self._embedder = embedder
        self._repository = repository
        self._max_distance = max_distance

    async def get(self, post: str) -> Optional[str]:
        nearest = await self._repository.nearest(await self._embedder.embed_one(post))
        if nearest is None:
            return None
        entry, distance = nearest
        if distance > self._max_distance:
            return None
        logger.info("Cache hit (%.3f) for %r", distance, post[:80])
        return entry.answer

    async def put(self, post: str, answer: str) -> None:
        await self._repository.save(CacheEntry(post=post, answer=answer), await self._embedder.embed_one(post))
