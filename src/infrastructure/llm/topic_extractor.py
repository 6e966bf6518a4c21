"""
infrastructure.llm.topic_extractor - AI topic extraction with an LLM.

Implements TopicExtractorPort using LangChain. The model is asked for a
comma-separated list of AI topics, reusing names already in the global
topic registry where possible. Non-AI posts yield an empty list.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from domain.entities import StreamEvent
from domain.exceptions import TopicExtractionError
from domain.ports import TopicRegistry
from infrastructure.llm.llm_builder import build_llm

logger = logging.getLogger(__name__)

_SYSTEM_INSTRUCTIONS = """You are a topic classifier specialized in artificial intelligence. Given a post, extract only AI-related topics, both explicitly mentioned and reasonably implied.

If a post mentions an AI model, framework, technique, company, use case, research area, or tool, infer related AI topics or domains.

For example, if the post mentions "LangChain and OpenAI APIs", you may infer topics like "Prompt Engineering", "Retrieval-Augmented Generation", and "AI Tooling".

Avoid generic terms like "tech", "news", or "cool project".

Only return relevant AI topics.

Also avoid overly narrow items such as specific model version numbers or isolated API methods.

If the topic or a very similar one is already in the provided list of existing topics, use the one from the list. Otherwise, feel free to create a new one.

If the content is not related to AI at all, return an empty string.

If the content still mentions AI, try to imply topics anyway.

Format your response as comma separated values (ALWAYS):
"topic1, topic2, topic3"

Examples:

Post:
Just finished a tutorial on LangChain using OpenAI's API. Super fun.
Output:
"LangChain, OpenAI, Prompt Engineering, AI Tooling"

Post:
Trying to run Mistral locally with Ollama. Inference seems fast!
Output:
"Mistral, Local Inference, Model Deployment, Open-Source LLMs"

Post:
Google's new image model can generate photos from text prompts.
Output:
"Text-to-Image, Generative Models, Google AI, Diffusion Models"

Post:
Tried the new Zelda game over the weekend. It's amazing!
Output:
"" """

_QUOTES = ('"', "“", "”")


def parse_topics(raw: Optional[str]) -> list[str]:
    """Split the model's CSV answer into clean, unique topic names."""
    if not raw:
        return []
    for quote in _QUOTES:
        raw = raw.replace(quote, "")
    topics: list[str] = []
    for part in raw.split(","):
        topic = part.strip()
        if topic and topic not in topics:
            topics.append(topic)
    return topics


def format_existing(topics: set[str]) -> str:
    return "[" + ", ".join(sorted(topics)) + "]"


class TopicExtractor:
    """Implements TopicExtractorPort with any supported LLM provider."""

    def __init__(
        self,
        registry: TopicRegistry,
        *,
        provider: str = "openai",
        model: str = "gpt-4o-mini",
        ollama_base_url: str = "http://localhost:11434/",
        openai_api_key: str = "",
        groq_api_key: str = "",
        timeout: Optional[float] = None,
        llm=None,
    ):
        self._registry = registry
        self._llm = llm or build_llm(
            provider=provider,
            model=model,
            temperature=0,
            ollama_base_url=ollama_base_url,
            openai_api_key=openai_api_key,
            groq_api_key=groq_api_key,
            timeout=timeout,
        )
        self._chain = self._build_chain()

    def _build_chain(self):
        prompt = ChatPromptTemplate.from_messages([
            ("system", _SYSTEM_INSTRUCTIONS),
            ("user", "Existing topics: {existing_topics}"),
            ("user", "Post: {post}"),
        ])
        return prompt | self._llm | StrOutputParser()

    async def extract(self, text: str, existing_topics: set[str]) -> list[str]:
        """Ask the model for the AI topics of `text`."""
        try:
            loop = asyncio.get_running_loop()
            raw: str = await loop.run_in_executor(
                None,
                self._chain.invoke,
                {"existing_topics": format_existing(existing_topics), "post": text},
            )
        except Exception as e:
            logger.error("Topic extraction failed: %s", e)
            raise TopicExtractionError(f"Failed to extract topics: {e}") from e
        return parse_topics(raw)

    async def process(self, event: StreamEvent) -> list[str]:
        """Extract topics for a stored event and register any new ones."""
        existing = await self._registry.members()
        topics = await self.extract(event.text, existing)
        await self._registry.add(topics)
        logger.debug("Topics for %s: %s", event.uri, topics)
        return topics
