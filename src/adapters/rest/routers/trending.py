"""Trending topics of the current hour."""

from fastapi import APIRouter, Depends

from domain.models import hour_bucket
from factory import ServiceFactory
from adapters.rest.dependencies import get_factory
from adapters.rest.schemas import TrendingOut

router = APIRouter(tags=["topics"])


@router.get("/trending", response_model=TrendingOut)
async def get_trending(factory: ServiceFactory = Depends(get_factory)):
    topics = await factory.create_trending_analyzer().trending()
    return TrendingOut(bucket=hour_bucket(), topics=topics)
