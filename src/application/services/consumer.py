"""
application.services.consumer - Shared loop for stream consumers.

A consumer step is retried forever; domain errors (Redis down, model
failure) are logged and followed by a short pause instead of killing the
consumer task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from domain.exceptions import DomainError

logger = logging.getLogger(__name__)

ERROR_PAUSE_S = 1.0


async def consume_until_stopped(
    step: Callable[[], Awaitable[object]],
    stop: asyncio.Event,
    name: str,
    error_pause_s: float = ERROR_PAUSE_S,
) -> None:
    logger.info("Consumer '%s' started", name)
    while not stop.is_set():
        try:
            await step()
        except DomainError:
            logger.exception("Consumer '%s' step failed", name)
            try:
                await asyncio.wait_for(stop.wait(), timeout=error_pause_s)
            except asyncio.TimeoutError:
                pass
    logger.info("Consumer '%s' stopped", name)


def consumer_names(count: int) -> list[str]:
    return [f"consumer-{i}" for i in range(1, count + 1)]
