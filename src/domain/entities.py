"""
domain.entities - Persistence-aware types.

StreamEvent is the post record that moves through the Redis streams and
gets stored (and later enriched with an embedding and topics) in Redis.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from domain.models import decode_langs, encode_langs


@dataclass
class StreamEvent:
    """A flattened post event.

    id is the post's at:// uri. stream_entry_id is the Redis stream entry
    the event was read from; it is never persisted.
    """
    id: str = ""
    did: str = ""
    rkey: str = ""
    text: str = ""
    time_us: int = 0
    operation: str = ""
    uri: str = ""
    parent_uri: str = ""
    root_uri: str = ""
    langs: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    text_embedding: Optional[list[float]] = None
    stream_entry_id: str = ""

    @classmethod
    def from_fields(cls, fields: dict[str, str], entry_id: str = "") -> StreamEvent:
        """Build from a stream entry's field map."""
        uri = fields.get("uri", "")
        try:
            time_us = int(fields.get("timeUs") or 0)
        except ValueError:
            time_us = 0
        return cls(
            id=uri,
            did=fields.get("did", ""),
            rkey=fields.get("rkey", ""),
            text=fields.get("text", ""),
            time_us=time_us,
            operation=fields.get("operation", ""),
            uri=uri,
            parent_uri=fields.get("parentUri", ""),
            root_uri=fields.get("rootUri", ""),
            langs=decode_langs(fields.get("langs", "[]")),
            stream_entry_id=entry_id,
        )

    def to_fields(self) -> dict[str, str]:
        """Field map for re-publishing the event on another stream."""
        return {
            "did": self.did,
            "rkey": self.rkey,
            "text": self.text,
            "timeUs": str(self.time_us),
            "operation": self.operation,
            "uri": self.uri,
            "parentUri": self.parent_uri,
            "rootUri": self.root_uri,
            "langs": encode_langs(self.langs),
        }


def is_candidate(event: StreamEvent) -> bool:
    """Only non-empty, non-delete posts are worth classifying."""
    return bool(event.text and event.text.strip()) and event.operation != "delete"
