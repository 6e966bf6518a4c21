"""
application.services.bot - Stage 4: the Bluesky analysis bot.

Every BOT_INTERVAL_S the bot searches for posts mentioning its handle,
answers each new one and replies in a thread of ≤300-character posts.

Answering a question:
    1. Semantic cache lookup (a close enough question was answered before)
    2. Route the question (trending_topics and/or summarization)
    3. Build each route's section; no route → fallback help text
    4. Cache routed answers
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from application.dto import BotRunStats
from application.services.semantic_cache import SemanticCache
from application.services.semantic_router import SUMMARIZATION, TRENDING_TOPICS, SemanticRouter
from application.services.summarizer import PostSummarizer
from application.services.trending import TrendingTopicsAnalyzer
from domain.exceptions import DomainError, StoreError
from domain.models import MAX_POST_LENGTH, BotReply, SearchPost, split_into_chunks
from domain.ports import AnswerWriterPort, BloomFilter, BlueskyPort

logger = logging.getLogger(__name__)

PROCESSED_POSTS_BLOOM = "processed-posts-bf"

NO_TRENDING = "No trending AI topics yet this hour."
NO_POSTS = "I couldn't find recent posts about that yet."


def format_trending(topics: list[str]) -> str:
    if not topics:
        return NO_TRENDING
    lines = [f"{i}. {topic}" for i, topic in enumerate(topics, start=1)]
    return "Trending AI topics right now:\n" + "\n".join(lines)


def strip_mention(text: str, handle: str) -> str:
    """Remove '@handle' from a mention so only the question is left."""
    if not handle:
        return text.strip()
    return re.sub(rf"@{re.escape(handle)}\b", "", text, flags=re.IGNORECASE).strip()


class BotService:
    def __init__(
        self,
        client: BlueskyPort,
        bloom: BloomFilter,
        router: SemanticRouter,
        cache: SemanticCache,
        trending: TrendingTopicsAnalyzer,
        summarizer: PostSummarizer,
        writer: AnswerWriterPort,
        handle: str,
        lookback_hours: int = 1,
    ):
        self._client = client
        self._bloom = bloom
        self._router = router
        self._cache = cache
        self._trending = trending
        self._summarizer = summarizer
        self._writer = writer
        self._handle = handle
        self._lookback_hours = lookback_hours

    async def setup(self) -> None:
        await self._bloom.create(PROCESSED_POSTS_BLOOM)

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    async def process_user_request(self, text: str) -> BotReply:
        cached = await self._cache.get(text)
        if cached is not None:
            return BotReply(answer=cached, cached=True)

        routes = await self._router.match_route(text)
        if not routes:
            return BotReply(answer=self._writer.fallback(text))

        sections: list[str] = []
        if TRENDING_TOPICS in routes:
            sections.append(format_trending(await self._trending.trending()))
        if SUMMARIZATION in routes:
            posts = await self._summarizer.related_posts(text)
            if posts:
                sections.append(await self._writer.summarize(text, posts))
            else:
                sections.append(NO_POSTS)

        answer = "\n\n".join(sections)
        await self._cache.put(text, answer)
        return BotReply(answer=answer, routes=frozenset(routes))

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def run_once(self) -> BotRunStats:
        """One polling round: find new mentions and reply to each."""
        await self._client.login()
        mentions = await self._client.search_posts(self._handle, self._lookback_hours)

        answered, skipped, failed = 0, 0, []
        for post in mentions:
            if self._is_own(post):
                skipped += 1
                continue
            try:
                if await self._bloom.exists(PROCESSED_POSTS_BLOOM, post.uri):
                    skipped += 1
                    continue
                await self._reply(post)
            except DomainError:
                logger.exception("Replying to %s failed", post.uri)
                failed.append(post.uri)
                continue
            answered += 1
            try:
                await self._bloom.add(PROCESSED_POSTS_BLOOM, post.uri)
            except StoreError:
                logger.exception("Could not mark %s as answered", post.uri)

        stats = BotRunStats(found=len(mentions), answered=answered, skipped=skipped, failed=failed)
        logger.info(
            "Bot round: %d found, %d answered, %d skipped, %d failed",
            stats.found, stats.answered, stats.skipped, len(stats.failed),
        )
        return stats

    def _is_own(self, post: SearchPost) -> bool:
        if self._client.did and post.author_did == self._client.did:
            return True
        return bool(self._handle) and post.author_handle.lower() == self._handle.lower()

    async def _reply(self, post: SearchPost) -> None:
        question = strip_mention(post.text, self._handle)
        reply = await self.process_user_request(question)
        root = post.thread_root
        parent = post.ref
        for chunk in split_into_chunks(reply.answer, MAX_POST_LENGTH):
            parent = await self._client.create_post(chunk, reply_root=root, reply_parent=parent)
        logger.info("Answered %s (routes=%s, cached=%s)", post.uri, sorted(reply.routes), reply.cached)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def run_forever(self, interval_s: int = 30, stop: Optional[asyncio.Event] = None) -> None:
        """Run a round now, then every interval_s seconds until stopped."""
        stop = stop or asyncio.Event()
        await self.setup()

        async def _job() -> None:
            try:
                await self.run_once()
            except DomainError:
                logger.exception("Bot round failed")

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            _job,
            trigger="interval",
            seconds=max(1, int(interval_s)),
            id="bluesky_bot",
            max_instances=1,
            coalesce=True,
        )

        await _job()
        scheduler.start()
        logger.info("Bot scheduled every %ds", interval_s)
        try:
            await stop.wait()
        finally:
            scheduler.shutdown(wait=False)
