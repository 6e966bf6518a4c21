"""
infrastructure.ml.embeddings - Text embeddings behind the Embedder port.

Two embedders are built from the same code: the local sentence-transformers
model whose vectors are stored on posts, and the larger provider model used
by the semantic router and cache.

Supported providers:
    - "huggingface" → langchain_huggingface.HuggingFaceEmbeddings
    - "openai"      → langchain_openai.OpenAIEmbeddings
    - "ollama"      → langchain_ollama.OllamaEmbeddings
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from langchain_core.embeddings import Embeddings

from domain.exceptions import EmbeddingError

logger = logging.getLogger(__name__)


def build_embeddings(
    *,
    provider: str,
    model: str,
    openai_api_key: str = "",
    ollama_base_url: str = "http://localhost:11434/",
    device: Optional[str] = None,
) -> Embeddings:
    """Build a LangChain Embeddings instance for the given provider.

    Raises:
        ValueError: If the provider is unknown or required credentials are missing.
    """
    provider = provider.lower().strip()

    if provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        model_kwargs = {"device": device} if device else {}
        logger.info("Building HuggingFace embeddings (model=%s)", model)
        return HuggingFaceEmbeddings(
            model_name=model,
            model_kwargs=model_kwargs,
            encode_kwargs={"normalize_embeddings": True},
        )

    elif provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        if not openai_api_key:
            raise ValueError("OPENAI_API_KEY is required for OpenAI embeddings")
        logger.info("Building OpenAI embeddings (model=%s)", model)
        return OpenAIEmbeddings(model=model, openai_api_key=openai_api_key)

    elif provider == "ollama":
        from langchain_ollama import OllamaEmbeddings

        logger.info("Building Ollama embeddings (model=%s)", model)
        return OllamaEmbeddings(model=model, base_url=ollama_base_url)

    else:
        raise ValueError(
            f"Unsupported embedding provider: '{provider}'. "
            "Must be 'huggingface', 'openai', or 'ollama'."
        )


class LangChainEmbedder:
    """Async Embedder over a (blocking) LangChain Embeddings instance."""

    def __init__(self, embeddings: Embeddings):
        self._embeddings = embeddings
        self._dimension: Optional[int] = None

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._embeddings.embed_documents, texts)
        except Exception as e:
            raise EmbeddingError(f"Embedding {len(texts)} texts failed: {e}") from e

    async def embed_one(self, text: str) -> list[float]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._embeddings.embed_query, text)
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e

    async def dimension(self) -> int:
        """Vector size, measured once with a dummy query."""
        if self._dimension is None:
            self._dimension = len(await self.embed_one("dimension check"))
            logger.info("Embedding dimension: %d", self._dimension)
        return self._dimension
