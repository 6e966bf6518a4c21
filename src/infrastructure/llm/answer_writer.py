"""
infrastructure.llm.answer_writer - Summaries of stored posts for the bot.

Implements AnswerWriterPort. Bluesky replies are short, so the model is
asked for a compact plain-text answer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from domain.exceptions import AnswerGenerationError
from infrastructure.llm.llm_builder import build_llm

logger = logging.getLogger(__name__)

MAX_POSTS = 20

FALLBACK_ANSWER = (
    "Hi! I can tell you which AI topics are trending on Bluesky right now, "
    "or summarize what people are posting about a topic. "
    "Try: \"What's trending?\" or \"What are people saying about AI agents?\""
)

_SYSTEM_INSTRUCTIONS = """You summarize Bluesky posts for a user's question.
You receive the question and a numbered list of recent posts about it.

Rules:
- Answer in plain text, no markdown, no hashtags.
- At most 5 short sentences.
- Only use what the posts say; do not invent facts.
- Mention the main opinions or news, not individual authors.
"""


def format_posts(posts: list[str], limit: int = MAX_POSTS) -> str:
    return "\n".join(f"{i}. {post.strip()}" for i, post in enumerate(posts[:limit], start=1))


class AnswerWriter:
    """Implements AnswerWriterPort using any supported LLM provider."""

    def __init__(
        self,
        *,
        provider: str = "openai",
        model: str = "gpt-4o-mini",
        ollama_base_url: str = "http://localhost:11434/",
        openai_api_key: str = "",
        groq_api_key: str = "",
        timeout: Optional[float] = None,
        llm=None,
    ):
        self._llm = llm or build_llm(
            provider=provider,
            model=model,
            temperature=0.3,
            ollama_base_url=ollama_base_url,
            openai_api_key=openai_api_key,
            groq_api_key=groq_api_key,
            timeout=timeout,
        )
        prompt = ChatPromptTemplate.from_messages([
            ("system", _SYSTEM_INSTRUCTIONS),
            ("user", "Question: {question}\n\nPosts:\n{posts}"),
        ])
        self._chain = prompt | self._llm | StrOutputParser()

    async def summarize(self, question: str, posts: list[str]) -> str:
        try:
            loop = asyncio.get_running_loop()
            answer: str = await loop.run_in_executor(
                None,
                self._chain.invoke,
                {"question": question, "posts": format_posts(posts)},
            )
        except Exception as e:
            logger.error("Summary generation failed: %s", e)
            raise AnswerGenerationError(f"Failed to summarize posts: {e}") from e
        return answer.strip()

    @staticmethod
    def fallback(question: str) -> str:
        return FALLBACK_ANSWER
