"""
application.services.ingest - Stage 1: firehose → 'jetstream' stream.

Each Jetstream message is parsed, flattened and appended to the stream.
Unparsable or malformed messages, and messages Redis refused, are logged
and dropped; the firehose keeps flowing.
"""

from __future__ import annotations

import logging

from domain.exceptions import EventParseError, StoreError
from domain.models import JetstreamEvent
from domain.ports import MessageSource, StreamBroker

logger = logging.getLogger(__name__)

JETSTREAM_STREAM = "jetstream"


class IngestService:
    def __init__(self, source: MessageSource, broker: StreamBroker, stream: str = JETSTREAM_STREAM):
        self._source = source
        self._broker = broker
        self._stream = stream
        self.published = 0
        self.dropped = 0

    async def handle_message(self, raw: str) -> None:
        try:
            event = JetstreamEvent.from_json(raw)
            fields = event.to_fields()
        except EventParseError as e:
            self.dropped += 1
            logger.warning("Dropping message: %s", e)
            return
        except Exception:
            # One odd message must not end the firehose loop
            self.dropped += 1
            logger.exception("Dropping unreadable message: %.200s", raw)
            return
        try:
            await self._broker.add(self._stream, fields)
        except StoreError as e:
            self.dropped += 1
            logger.error("Could not publish %s: %s", event.uri, e)
            return
        self.published += 1
        if self.published % 1000 == 0:
            logger.info("Published %d events to '%s'", self.published, self._stream)

    async def run(self) -> None:
        logger.info("Ingesting firehose into '%s'", self._stream)
        await self._source.run(self.handle_message)

    async def stop(self) -> None:
        await self._source.stop()
