"""
infrastructure.config - Typed, injectable configuration.

A frozen dataclass that can be constructed from the environment (and an
optional .env file) or passed explicitly in tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_list(name: str, default: list[str]) -> list[str]:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    return [v.strip() for v in val.split(",") if v.strip()]


@dataclass(frozen=True)
class Settings:
    """Centralized configuration for every pipeline stage."""

    # Redis
    redis_url: str = "redis://localhost:6379"

    # Firehose
    jetstream_url: str = (
        "wss://jetstream2.us-east.bsky.network/subscribe"
        "?wantedCollections=app.bsky.feed.post"
    )

    # ── Centralized LLM Provider ────────────────────────────────
    # One setting controls topic extraction and bot answers.
    # Allowed: "openai", "groq", "ollama"
    llm_provider: str = "openai"
    llm_model_openai: str = "gpt-4o-mini"
    llm_model_groq: str = "llama-3.3-70b-versatile"
    llm_model_ollama: str = "deepseek-coder-v2"
    llm_timeout_s: float = 60.0
    ollama_base_url: str = "http://localhost:11434/"
    openai_api_key: str = ""
    groq_api_key: str = ""

    # Embeddings stored on posts (local by default, 384 dims)
    embedding_provider: str = "huggingface"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int = 384

    # Embeddings used by the semantic router and cache
    semantic_embedding_provider: str = "openai"
    semantic_embedding_model: str = "text-embedding-3-large"
    semantic_embedding_dimension: int = 3072

    # Content filter
    filter_strategy: str = "zero_shot"
    zero_shot_model: str = "MoritzLaurer/DeBERTa-v3-large-mnli-fever-anli-ling-wanli"
    filter_labels: list[str] = field(default_factory=lambda: ["Artificial Intelligence"])
    filter_threshold: float = 0.90
    reference_max_distance: float = 0.35

    # Stream consumers
    num_consumers: int = 4
    read_count: int = 5
    stream_maxlen: int = 1_000_000

    # Bluesky bot
    bluesky_handle: str = ""
    bluesky_did: str = ""
    bluesky_app_password: str = ""
    bluesky_service_url: str = "https://bsky.social"
    bot_interval_s: int = 30
    bot_lookback_hours: int = 1
    cache_max_distance: float = 0.1

    # REST API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def active_llm_model(self) -> str:
        """Return the model name for the currently active LLM provider."""
        if self.llm_provider == "groq":
            return self.llm_model_groq
        elif self.llm_provider == "ollama":
            return self.llm_model_ollama
        return self.llm_model_openai

    @classmethod
    def from_env(cls) -> Settings:
        """Build Settings from environment variables (and .env if present)."""
        from dotenv import load_dotenv
        load_dotenv()

        return cls(
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            jetstream_url=os.getenv("JETSTREAM_URL", cls.jetstream_url),

            llm_provider=os.getenv("LLM_PROVIDER", "openai"),
            llm_model_openai=os.getenv("LLM_MODEL_OPENAI", "gpt-4o-mini"),
            llm_model_groq=os.getenv("LLM_MODEL_GROQ", "llama-3.3-70b-versatile"),
            llm_model_ollama=os.getenv("LLM_MODEL_OLLAMA", "deepseek-coder-v2"),
            llm_timeout_s=float(os.getenv("LLM_TIMEOUT_S", "60")),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            groq_api_key=os.getenv("GROQ_API_KEY", ""),

            embedding_provider=os.getenv("EMBEDDING_PROVIDER", "huggingface"),
            embedding_model=os.getenv(
                "EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2",
            ),
            embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", "384")),
            semantic_embedding_provider=os.getenv("SEMANTIC_EMBEDDING_PROVIDER", "openai"),
            semantic_embedding_model=os.getenv(
                "SEMANTIC_EMBEDDING_MODEL", "text-embedding-3-large",
            ),
            semantic_embedding_dimension=int(os.getenv("SEMANTIC_EMBEDDING_DIMENSION", "3072")),

            filter_strategy=os.getenv("FILTER_STRATEGY", "zero_shot"),
            zero_shot_model=os.getenv("ZERO_SHOT_MODEL", cls.zero_shot_model),
            filter_labels=_env_list("FILTER_LABELS", ["Artificial Intelligence"]),
            filter_threshold=float(os.getenv("FILTER_THRESHOLD", "0.90")),
            reference_max_distance=float(os.getenv("REFERENCE_MAX_DISTANCE", "0.35")),

            num_consumers=int(os.getenv("NUM_CONSUMERS", "4")),
            read_count=int(os.getenv("READ_COUNT", "5")),
            stream_maxlen=int(os.getenv("STREAM_MAXLEN", "1000000")),

            bluesky_handle=os.getenv("BLUESKY_HANDLE", ""),
            bluesky_did=os.getenv("BLUESKY_DID", ""),
            bluesky_app_password=os.getenv("BLUESKY_APP_PASSWORD", ""),
            bluesky_service_url=os.getenv("BLUESKY_SERVICE_URL", "https://bsky.social"),
            bot_interval_s=int(os.getenv("BOT_INTERVAL_S", "30")),
            bot_lookback_hours=int(os.getenv("BOT_LOOKBACK_HOURS", "1")),
            cache_max_distance=float(os.getenv("CACHE_MAX_DISTANCE", "0.1")),

            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8000")),
        )
