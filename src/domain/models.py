"""
domain.models - Value objects for the stream pipeline.

Immutable data containers with no dependencies on infrastructure
(no Redis, no LangChain, no torch).

    - JetstreamEvent and its nested records  → raw firehose message
    - ClassificationResult                   → zero-shot output
    - Routing, RouteMatch, CacheEntry        → analysis bot
    - SearchPost, PostRef, BotReply          → Bluesky bot I/O
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from domain.exceptions import EventParseError

POST_COLLECTION = "app.bsky.feed.post"


# ---------------------------------------------------------------------------
# Langs encoding (stream field format: "[en, pt]")
# ---------------------------------------------------------------------------

def encode_langs(langs: Optional[list[str]]) -> str:
    """Encode a language list the way it travels in stream fields."""
    if langs is None:
        return "[]"
    return "[" + ", ".join(langs) + "]"


def decode_langs(value: Optional[str]) -> list[str]:
    """Inverse of encode_langs. Blank, '[]' and 'null' decode to []."""
    if not value:
        return []
    inner = value.strip().lstrip("[").rstrip("]").strip()
    if not inner or inner == "null":
        return []
    return [lang.strip() for lang in inner.split(",") if lang.strip()]


# ---------------------------------------------------------------------------
# Jetstream firehose message
# ---------------------------------------------------------------------------

def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise EventParseError(f"Field '{key}' must be a string, got {type(value).__name__}")
    return value


def _object(data: dict[str, Any], key: str) -> Optional[dict[str, Any]]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise EventParseError(f"Field '{key}' must be an object, got {type(value).__name__}")
    return value


def _langs(data: dict[str, Any]) -> Optional[list[str]]:
    value = data.get("langs")
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(lang, str) for lang in value):
        raise EventParseError(f"Field 'langs' must be a list of strings, got {value!r}")
    return value


@dataclass(frozen=True)
class PostRef:
    """Strong reference to a post (uri + content id)."""
    uri: str = ""
    cid: str = ""

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional[PostRef]:
        if not data:
            return None
        return cls(uri=_text(data, "uri"), cid=_text(data, "cid"))


@dataclass(frozen=True)
class ReplyRef:
    parent: Optional[PostRef] = None
    root: Optional[PostRef] = None


@dataclass(frozen=True)
class PostRecord:
    """The app.bsky.feed.post record carried by a commit."""
    type: str = ""
    created_at: str = ""
    text: str = ""
    langs: Optional[list[str]] = None
    reply: Optional[ReplyRef] = None


@dataclass(frozen=True)
class Commit:
    rev: str = ""
    operation: str = ""
    collection: str = ""
    rkey: str = ""
    cid: str = ""
    record: Optional[PostRecord] = None


@dataclass(frozen=True)
class JetstreamEvent:
    """One message from the Jetstream WebSocket.

    Only the fields the pipeline needs are kept; unknown keys are ignored.
    """
    did: str = ""
    time_us: int = 0
    kind: str = ""
    commit: Optional[Commit] = None

    @classmethod
    def from_json(cls, raw: str) -> JetstreamEvent:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise EventParseError(f"Invalid Jetstream message: {e}") from e
        if not isinstance(data, dict):
            raise EventParseError("Jetstream message is not a JSON object")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JetstreamEvent:
        """Build from a decoded message.

        Raises:
            EventParseError: a known field has the wrong JSON type.
        """
        commit_data = _object(data, "commit")
        commit = None
        if commit_data is not None:
            record = None
            record_data = _object(commit_data, "record")
            if record_data is not None:
                reply = None
                reply_data = _object(record_data, "reply")
                if reply_data is not None:
                    reply = ReplyRef(
                        parent=PostRef.from_dict(_object(reply_data, "parent")),
                        root=PostRef.from_dict(_object(reply_data, "root")),
                    )
                record = PostRecord(
                    type=_text(record_data, "$type"),
                    created_at=_text(record_data, "createdAt"),
                    text=_text(record_data, "text"),
                    langs=_langs(record_data),
                    reply=reply,
                )
            commit = Commit(
                rev=_text(commit_data, "rev"),
                operation=_text(commit_data, "operation"),
                collection=_text(commit_data, "collection"),
                rkey=_text(commit_data, "rkey"),
                cid=_text(commit_data, "cid"),
                record=record,
            )
        try:
            time_us = int(data.get("time_us") or 0)
        except (TypeError, ValueError) as e:
            raise EventParseError(f"Invalid time_us: {data.get('time_us')!r}") from e
        return cls(
            did=_text(data, "did"),
            time_us=time_us,
            kind=_text(data, "kind"),
            commit=commit,
        )

    @property
    def uri(self) -> str:
        if self.commit is None:
            return ""
        return f"at://{self.did}/{POST_COLLECTION}/{self.commit.rkey}"

    def to_fields(self) -> dict[str, str]:
        """Flatten into the field map written to the 'jetstream' stream."""
        commit = self.commit
        record = commit.record if commit else None
        reply = record.reply if record else None
        return {
            "did": self.did,
            "createdAt": record.created_at if record else "",
            "timeUs": str(self.time_us),
            "text": record.text if record else "",
            "langs": encode_langs(record.langs) if record else "",
            "operation": commit.operation if commit else "",
            "rkey": commit.rkey if commit else "",
            "parentUri": reply.parent.uri if reply and reply.parent else "",
            "rootUri": reply.root.uri if reply and reply.root else "",
            "uri": self.uri,
        }


# ---------------------------------------------------------------------------
# Hourly topic counters
# ---------------------------------------------------------------------------

TOPK_KEYSPACE = "topics-topk:"
CMS_KEYSPACE = "topics-cms:"


def hour_bucket(now: Optional[datetime] = None) -> str:
    """Truncate to the hour, ISO style: 2025-05-01T14:00."""
    now = now or datetime.now()
    return now.replace(minute=0, second=0, microsecond=0).strftime("%Y-%m-%dT%H:%M")


def topk_key(now: Optional[datetime] = None) -> str:
    return TOPK_KEYSPACE + hour_bucket(now)


def cms_key(now: Optional[datetime] = None) -> str:
    return CMS_KEYSPACE + hour_bucket(now)


# ---------------------------------------------------------------------------
# Zero-shot classification
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassificationResult:
    """Candidate labels and their scores, best first."""
    text: str
    labels: list[str] = field(default_factory=list)
    scores: list[float] = field(default_factory=list)

    def best(self) -> Optional[tuple[str, float]]:
        if not self.labels:
            return None
        return self.labels[0], self.scores[0]

    def any_above(self, threshold: float) -> bool:
        return any(score > threshold for score in self.scores)


# ---------------------------------------------------------------------------
# Semantic routing / caching
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Routing:
    """A reference phrasing for a route.

    max_distance is the largest cosine distance at which a clause still
    matches this reference.
    """
    text: str
    route: str
    max_distance: float


@dataclass(frozen=True)
class RouteMatch:
    route: str
    reference: str
    distance: float


@dataclass(frozen=True)
class CacheEntry:
    post: str
    answer: str


# ---------------------------------------------------------------------------
# Bluesky bot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SearchPost:
    """A post returned by app.bsky.feed.searchPosts."""
    uri: str
    cid: str
    author_did: str = ""
    author_handle: str = ""
    text: str = ""
    created_at: str = ""
    root: Optional[PostRef] = None

    @property
    def ref(self) -> PostRef:
        return PostRef(uri=self.uri, cid=self.cid)

    @property
    def thread_root(self) -> PostRef:
        """Root of the thread this post belongs to (itself when top-level)."""
        return self.root or self.ref


@dataclass(frozen=True)
class BotReply:
    answer: str
    routes: frozenset[str] = frozenset()
    cached: bool = False


MAX_POST_LENGTH = 300


def split_into_chunks(text: str, max_length: int = MAX_POST_LENGTH) -> list[str]:
    """Greedy word-wise split so that every chunk fits in one post.

    Words longer than max_length are cut into max_length pieces.
    """
    chunks: list[str] = []
    current = ""
    for word in text.split():
        while len(word) > max_length:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(word[:max_length])
            word = word[max_length:]
        if not word:
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_length:
            chunks.append(current)
            current = word
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks
