"""Stored posts tagged with given topics."""

from fastapi import APIRouter, Depends, HTTPException, Query

from factory import ServiceFactory
from adapters.rest.dependencies import get_factory
from adapters.rest.schemas import PostsOut

router = APIRouter(tags=["topics"])


@router.get("/posts", response_model=PostsOut)
async def get_posts(
    topics: str = Query(..., description="Comma-separated topics, e.g. 'LLMs,AI agents'"),
    limit: int = Query(default=20, ge=1, le=100),
    factory: ServiceFactory = Depends(get_factory),
):
    """Newest stored posts tagged with any of `topics`."""
    wanted = [t.strip() for t in topics.split(",") if t.strip()]
    if not wanted:
        raise HTTPException(status_code=422, detail="At least one topic is required.")
    texts = await factory.create_event_repository().find_texts_by_topics(wanted, limit=limit)
    return PostsOut(topics=wanted, posts=texts)
