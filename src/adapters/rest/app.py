"""
FastAPI application - REST adapter for the Bluesky stream pipeline.

Exposes the analysis bot (ask, trending, related posts) without posting
to Bluesky. The pipeline stages themselves run from the CLI.

Usage:
    python run_api.py

Or directly:
    uvicorn adapters.rest.app:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Ensure src/ is on sys.path when invoked via uvicorn directly
_src_dir = Path(__file__).resolve().parent.parent.parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

from domain.exceptions import DomainError
from infrastructure.config import Settings
from factory import ServiceFactory
from adapters.rest.dependencies import set_factory
from adapters.rest.routers import ask, health, posts, trending, ws

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize ServiceFactory (with routes) on startup, close Redis on shutdown."""
    factory = ServiceFactory(Settings.from_env())
    await factory.initialize(load_routes=True)
    set_factory(factory)
    yield
    set_factory(None)
    await factory.close()


app = FastAPI(
    title="Bluesky Stream Pipeline",
    version=__version__,
    description="Trending AI topics and summaries of Bluesky posts.",
    lifespan=lifespan,
)

# CORS - permissive for development; tighten allowed_origins in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# Register routers
app.include_router(health.router)
app.include_router(ask.router)
app.include_router(trending.router)
app.include_router(posts.router)
app.include_router(ws.router)
