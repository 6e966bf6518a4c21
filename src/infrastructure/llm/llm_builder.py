"""
infrastructure.llm.llm_builder - Chat models for the topic extractor and the bot.

LLM_PROVIDER picks the backend:
    openai  → ChatOpenAI
    groq    → ChatGroq
    ollama  → ChatOllama (local, no key needed)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)

GROQ_DEFAULT_MAX_TOKENS = 512


def _openai(model: str, opts: dict[str, Any], keys: dict[str, str]) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    if not keys["openai"]:
        raise ValueError("OPENAI_API_KEY is required when LLM_PROVIDER='openai'")
    return ChatOpenAI(model=model, openai_api_key=keys["openai"], **opts)


def _groq(model: str, opts: dict[str, Any], keys: dict[str, str]) -> BaseChatModel:
    from langchain_groq import ChatGroq

    if not keys["groq"]:
        raise ValueError("GROQ_API_KEY is required when LLM_PROVIDER='groq'")
    opts.setdefault("max_tokens", GROQ_DEFAULT_MAX_TOKENS)
    return ChatGroq(model=model, groq_api_key=keys["groq"], **opts)


def _ollama(model: str, opts: dict[str, Any], keys: dict[str, str]) -> BaseChatModel:
    from langchain_ollama import ChatOllama

    timeout = opts.pop("timeout", None)
    if timeout is not None:
        opts["client_kwargs"] = {"timeout": timeout}
    if "max_tokens" in opts:
        opts["num_predict"] = opts.pop("max_tokens")
    return ChatOllama(model=model, base_url=keys["ollama_url"], **opts)


_PROVIDERS: dict[str, Callable[[str, dict[str, Any], dict[str, str]], BaseChatModel]] = {
    "openai": _openai,
    "groq": _groq,
    "ollama": _ollama,
}


def build_llm(
    *,
    provider: str,
    model: str,
    temperature: float = 0,
    ollama_base_url: str = "http://localhost:11434/",
    openai_api_key: str = "",
    groq_api_key: str = "",
    timeout: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> BaseChatModel:
    """Build a chat model for `provider`.

    Raises:
        ValueError: unknown provider, or its API key is missing.
    """
    name = provider.lower().strip()
    builder = _PROVIDERS.get(name)
    if builder is None:
        raise ValueError(
            f"Unsupported LLM_PROVIDER: '{provider}'. "
            f"Must be one of: {', '.join(sorted(_PROVIDERS))}."
        )

    opts: dict[str, Any] = {"temperature": temperature}
    if timeout is not None:
        opts["timeout"] = timeout
    if max_tokens is not None:
        opts["max_tokens"] = max_tokens

    logger.info("Building %s chat model (model=%s, timeout=%s)", name, model, timeout)
    return builder(model, opts, {
        "openai": openai_api_key,
        "groq": groq_api_key,
        "ollama_url": ollama_base_url,
    })
