"""
Run the Bluesky stream pipeline REST API.

Usage:
    python run_api.py

Environment variables (all optional):
    API_HOST            Bind address (default: 0.0.0.0)
    API_PORT            Port (default: 8000)
    REDIS_URL           Redis Stack URL (default: redis://localhost:6379)
    LLM_PROVIDER        "openai", "groq", or "ollama" - used for topics and answers
    OPENAI_API_KEY      Required when LLM_PROVIDER=openai or embeddings use OpenAI
    GROQ_API_KEY        Required when LLM_PROVIDER=groq
    BLUESKY_HANDLE      Bot account handle (only needed by the bot stage)
"""

import sys
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).parent / "src"))

import uvicorn

from infrastructure.config import Settings

if __name__ == "__main__":
    config = Settings.from_env()
    uvicorn.run(
        "adapters.rest.app:app",
        host=config.api_host,
        port=config.api_port,
        reload=True,
    )
