"""
application.services.semantic_router - Intent routing by embedding similarity.

A question is split into clauses; each clause is compared against stored
reference phrasings of every route. A route matches when some clause is
within that reference's max_distance. One question can match several
routes ("what's trending, and what are people saying about agents?").
"""

from __future__ import annotations

import logging
import re

from domain.models import RouteMatch, Routing
from domain.ports import Embedder, RoutingRepository

logger = logging.getLogger(__name__)

TRENDING_TOPICS = "trending_topics"
SUMMARIZATION = "summarization"

_CLAUSE_SPLIT = re.compile(r"[!?,.:;()\"\[\]{}]+")

TRENDING_REFERENCES = [
    "What are the most mentioned topics?",
    "What's trending right now?",
    "What’s hot in the network",
    "Top topics?",
    "What are the most discussed topics?",
    "What are the most popular topics?",
    "What are the most talked about topics?",
    "What are the most mentioned topics in the AI community?",
]

SUMMARIZATION_REFERENCES = [
    "What are people saying about {topics}?",
    "What’s the buzz around {topics}?",
    "Any chatter about {topics}?",
    "What are folks talking about regarding {topics}?",
    "What’s being said about {topics} lately?",
    "What have people been posting about {topics}?",
    "What's trending in conversations about {topics}?",
    "What’s the latest talk on {topics}?",
    "Any recent posts about {topics}?",
    "What's the sentiment around {topics}?",
    "What are people saying about {topic1} and {topic2}?",
    "What are folks talking about when it comes to {topic1}, {topic2}, or both?",
    "What’s being said about {topic1}, {topic2}, and others?",
    "Is there any discussion around {topic1} and {topic2}?",
    "How are people reacting to both {topic1} and {topic2}?",
    "What’s the conversation like around {topic1}, {topic2}, or related topics?",
    "Are {topic1} and {topic2} being discussed together?",
    "Any posts comparing {topic1} and {topic2}?",
    "What's trending when it comes to {topic1} and {topic2}?",
    "What are people saying about the relationship between {topic1} and {topic2}?",
    "What’s the latest discussion on {topic1} and {topic2}?",
]

DEFAULT_ROUTES = [
    (TRENDING_TOPICS, TRENDING_REFERENCES, 0.2),
    (SUMMARIZATION, SUMMARIZATION_REFERENCES, 0.55),
]


def split_into_clauses(text: str) -> list[str]:
    return [part.strip() for part in _CLAUSE_SPLIT.split(text) if part.strip()]


class SemanticRouter:
    def __init__(self, embedder: Embedder, routings: RoutingRepository):
        self._embedder = embedder
        self._routings = routings

    async def references_loaded(self) -> bool:
        return await self._routings.count() > 0

    async def load_references(self, references: list[str], route: str, max_distance: float) -> int:
        vectors = await self._embedder.embed(references)
        routings = [Routing(text=ref, route=route, max_distance=max_distance) for ref in references]
        await self._routings.save_all(routings, vectors)
        logger.info("Loaded %d references for route '%s'", len(routings), route)
        return len(routings)

    async def load_default_routes(self) -> int:
        total = 0
        for route, references, max_distance in DEFAULT_ROUTES:
            total += await self.load_references(references, route, max_distance)
        return total

    async def explain(self, post: str) -> list[RouteMatch]:
        """Every clause that matched a route, with the reference it matched."""
        clauses = split_into_clauses(post)
        if not clauses:
            return []
        vectors = await self._embedder.embed(clauses)
        matches: list[RouteMatch] = []
        for clause, vector in zip(clauses, vectors):
            nearest = await self._routings.nearest(vector)
            if nearest is None:
                continue
            routing, distance = nearest
            logger.debug("Clause %r → %s (%.3f)", clause, routing.route, distance)
            if distance <= routing.max_distance:
                matches.append(RouteMatch(route=routing.route, reference=routing.text, distance=distance))
        return matches

    async def match_route(self, post: str) -> set[str]:
        routes = {match.route for match in await self.explain(post)}
        logger.info("Routes for %r: %s", post[:80], sorted(routes) or "none")
        return routes
