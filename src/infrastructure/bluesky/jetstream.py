"""
infrastructure.bluesky.jetstream - WebSocket client for the Jetstream firehose.

Implements MessageSource. Every text frame is handed to the callback as-is;
parsing happens in the ingest service. A dropped connection is retried with
a linear backoff capped at 30 seconds until stop() is called.
"""

from __future__ import annotations

import asyncio
import logging

import websockets
from websockets.exceptions import WebSocketException

from domain.ports import MessageHandler

logger = logging.getLogger(__name__)

DEFAULT_URL = (
    "wss://jetstream2.us-east.bsky.network/subscribe"
    "?wantedCollections=app.bsky.feed.post"
)

BASE_DELAY_S = 2.0
MAX_DELAY_S = 30.0


def reconnect_delay(attempt: int) -> float:
    """Seconds to wait before reconnect attempt number `attempt` (1-based)."""
    return min(MAX_DELAY_S, BASE_DELAY_S * max(attempt, 1))


class JetstreamClient:
    """Long-running Jetstream subscriber."""

    def __init__(self, url: str = DEFAULT_URL):
        self.url = url
        self._stopped = asyncio.Event()
        self._connection = None
        self.messages_received = 0

    async def run(self, on_message: MessageHandler) -> None:
        """Consume the firehose until stop() is called."""
        attempt = 0
        while not self._stopped.is_set():
            try:
                async with websockets.connect(self.url) as ws:
                    self._connection = ws
                    if attempt:
                        logger.info("Reconnected to Jetstream after %d attempt(s)", attempt)
                    else:
                        logger.info("Connected to Jetstream at %s", self.url)
                    attempt = 0
                    async for message in ws:
                        if isinstance(message, bytes):
                            message = message.decode("utf-8", errors="replace")
                        self.messages_received += 1
                        await on_message(message)
                if self._stopped.is_set():
                    break
                logger.info("Jetstream connection closed")
            except (WebSocketException, OSError) as e:
                if self._stopped.is_set():
                    break
                logger.warning("Jetstream connection error: %s", e)
            finally:
                self._connection = None

            attempt += 1
            delay = reconnect_delay(attempt)
            logger.info("Reconnecting in %.0fs (attempt %d)", delay, attempt)
            if await self._wait_stopped(delay):
                break
        logger.info("Jetstream client stopped (%d messages)", self.messages_received)

    async def stop(self) -> None:
        self._stopped.set()
        if self._connection is not None:
            await self._connection.close()

    async def _wait_stopped(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

