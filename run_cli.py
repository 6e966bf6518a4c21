"""
Run the Bluesky stream pipeline CLI.

Usage:
    python run_cli.py [COMMAND] [OPTIONS]

Commands:
    init       Create indexes, consumer groups, Bloom filters and routes
    ingest     Jetstream firehose → 'jetstream' stream
    filter     'jetstream' → on-topic posts in 'filtered-events'
    enrich     Embed filtered posts
    topics     Extract and count AI topics
    bot        Answer mentions on Bluesky (--once for a single round)
    ask        Answer one question locally, without posting
    trending   Show this hour's trending topics
    serve      Start the REST API

Examples:
    python run_cli.py init
    python run_cli.py ingest
    python run_cli.py ask "What are people saying about AI agents?"

Environment variables (all optional):
    REDIS_URL                   Redis Stack URL (default: redis://localhost:6379)
    JETSTREAM_URL               Jetstream subscribe URL
    LLM_PROVIDER                "openai", "groq", or "ollama" - controls ALL LLM components
    LLM_MODEL_OPENAI            Model name when LLM_PROVIDER=openai (default: gpt-4o-mini)
    LLM_MODEL_GROQ              Model name when LLM_PROVIDER=groq (default: llama-3.3-70b-versatile)
    LLM_MODEL_OLLAMA            Model name when LLM_PROVIDER=ollama (default: deepseek-coder-v2)
    OPENAI_API_KEY              Required when OpenAI is used for the LLM or embeddings
    GROQ_API_KEY                Required when LLM_PROVIDER=groq
    EMBEDDING_PROVIDER          Post embeddings: "huggingface", "openai", or "ollama"
    SEMANTIC_EMBEDDING_PROVIDER Routing/cache embeddings (default: openai)
    FILTER_STRATEGY             "zero_shot" or "reference"
    NUM_CONSUMERS               Consumers per enrichment/topic stage (default: 4)
    BLUESKY_HANDLE              Bot account handle
    BLUESKY_APP_PASSWORD        Bot account app password
    LOG_LEVEL                   DEBUG, INFO, WARNING or ERROR (default: INFO)
"""

import sys
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).parent / "src"))

from adapters.cli.main import app

if __name__ == "__main__":
    app()
