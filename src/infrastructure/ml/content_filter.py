"""
infrastructure.ml.content_filter - ContentClassifier implementations.

Two ways of deciding whether a post is on-topic:
    - ZeroShotContentClassifier: NLI zero-shot against candidate labels.
    - ReferenceContentClassifier: nearest-neighbour against example posts
      stored in the FilteringExample index.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from domain.entities import StreamEvent
from domain.exceptions import ClassificationError
from domain.ports import Embedder, ZeroShotPort
from infrastructure.persistence.vector_repos import RedisFilteringExampleRepository

logger = logging.getLogger(__name__)

REFERENCE_POSTS: tuple[str, ...] = (
    "Just tried the new GPT model and the reasoning upgrade is impressive",
    "Fine-tuning a small language model on our support tickets cut response time in half",
    "LLM agents still struggle with long multi-step tasks without good tool design",
    "Our team shipped a RAG pipeline with vector search over internal docs",
    "Open-weight models like Llama and Mistral are closing the gap with closed models",
    "Diffusion models can now generate consistent characters across images",
    "New paper on scaling laws for transformer training compute",
    "AI coding assistants changed how I review pull requests",
    "Prompt injection remains an unsolved security problem for LLM apps",
    "Running a local model with Ollama on my laptop for private chat",
    "Machine learning in production is mostly data quality work",
    "The EU AI Act will change how companies deploy generative AI",
    "Benchmarks for large language models are saturating too quickly",
    "Embedding models make semantic search over millions of posts practical",
    "Neural networks for protein folding keep getting better",
    "Computer vision model detects defects on the assembly line in real time",
)


class ZeroShotContentClassifier:
    """Related when any candidate label scores strictly above the threshold."""

    def __init__(self, classifier: ZeroShotPort, labels: list[str], threshold: float = 0.90):
        self._classifier = classifier
        self._labels = list(labels)
        self._threshold = threshold

    async def prepare(self) -> None:
        """Nothing to load; the model is loaded on construction."""

    def _is_related(self, text: str) -> bool:
        if not text or not text.strip():
            return False
        try:
            result = self._classifier.classify(text, self._labels, multi_label=True)
        except ClassificationError:
            logger.exception("Zero-shot classification failed")
            return False
        return result.any_above(self._threshold)

    async def is_related(self, events: list[StreamEvent]) -> list[tuple[StreamEvent, bool]]:
        loop = asyncio.get_running_loop()
        results = []
        for event in events:
            related = await loop.run_in_executor(None, self._is_related, event.text)
            results.append((event, related))
        return results


class ReferenceContentClassifier:
    """Related when the nearest example post is within max_distance."""

    def __init__(
        self,
        embedder: Embedder,
        examples: RedisFilteringExampleRepository,
        max_distance: float = 0.35,
    ):
        self._embedder = embedder
        self._examples = examples
        self._max_distance = max_distance

    async def prepare(self) -> None:
        await self.load_references()

    async def load_references(self, texts: Sequence[str] = REFERENCE_POSTS) -> int:
        """Store the example posts once. Returns how many were added."""
        if await self._examples.count() > 0:
            logger.info("Filtering examples already loaded")
            return 0
        texts = list(texts)
        vectors = await self._embedder.embed(texts)
        await self._examples.save_all(texts, vectors)
        return len(texts)

    async def is_related(self, events: list[StreamEvent]) -> list[tuple[StreamEvent, bool]]:
        if not events:
            return []
        vectors = await self._embedder.embed([e.text for e in events])
        results = []
        for event, vector in zip(events, vectors):
            nearest = await self._examples.nearest(vector)
            related = nearest is not None and nearest[1] <= self._max_distance
            if nearest is not None:
                logger.debug("Nearest example for %s at %.3f", event.uri, nearest[1])
            results.append((event, related))
        return results
