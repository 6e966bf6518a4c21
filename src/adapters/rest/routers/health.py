"""Liveness endpoint."""

from fastapi import APIRouter, Depends, Request

from factory import ServiceFactory
from adapters.rest.dependencies import get_factory
from adapters.rest.schemas import HealthOut

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthOut)
async def health(request: Request, factory: ServiceFactory = Depends(get_factory)):
    redis_ok = await factory.healthy()
    return HealthOut(
        status="ok" if redis_ok else "degraded",
        version=request.app.version,
        redis=redis_ok,
    )
