"""Domain value objects: firehose parsing, langs, hour buckets, chunking."""

from __future__ import annotations

import json
from datetime import datetime

import pytest

from domain.entities import StreamEvent, is_candidate
from domain.exceptions import EventParseError
from domain.models import (
    ClassificationResult,
    JetstreamEvent,
    PostRef,
    SearchPost,
    cms_key,
    decode_langs,
    encode_langs,
    hour_bucket,
    split_into_chunks,
    topk_key,
)


def _jetstream_message(**commit_overrides) -> str:
    commit = {
        "rev": "3lbmr",
        "operation": "create",
        "collection": "app.bsky.feed.post",
        "rkey": "3lbmrabc",
        "cid": "bafyrei",
        "record": {
            "$type": "app.bsky.feed.post",
            "createdAt": "2025-05-01T14:03:00.000Z",
            "text": "Fine-tuning small LLMs is underrated",
            "langs": ["en", "pt"],
            "reply": {
                "parent": {"uri": "at://did:plc:bob/app.bsky.feed.post/p1", "cid": "c1"},
                "root": {"uri": "at://did:plc:bob/app.bsky.feed.post/r1", "cid": "c0"},
            },
        },
    }
    commit.update(commit_overrides)
    return json.dumps({
        "did": "did:plc:alice",
        "time_us": 1746108180000000,
        "kind": "commit",
        "commit": commit,
        "identity": {"ignored": True},
    })


# ── Langs ──

def test_encode_langs():
    assert encode_langs(["en", "pt"]) == "[en, pt]"
    assert encode_langs([]) == "[]"
    assert encode_langs(None) == "[]"


@pytest.mark.parametrize("value", ["", None, "[]", "[null]", "null"])
def test_decode_blank_langs(value):
    assert decode_langs(value) == []


def test_decode_langs_strips_spaces():
    assert decode_langs("[en,  pt ]") == ["en", "pt"]


# ── Jetstream events ──

def test_jetstream_event_from_json():
    event = JetstreamEvent.from_json(_jetstream_message())
    assert event.did == "did:plc:alice"
    assert event.time_us == 1746108180000000
    assert event.commit.record.langs == ["en", "pt"]
    assert event.commit.record.reply.root == PostRef(
        uri="at://did:plc:bob/app.bsky.feed.post/r1", cid="c0",
    )
    assert event.uri == "at://did:plc:alice/app.bsky.feed.post/3lbmrabc"


def test_jetstream_event_to_fields():
    fields = JetstreamEvent.from_json(_jetstream_message()).to_fields()
    assert fields == {
        "did": "did:plc:alice",
        "createdAt": "2025-05-01T14:03:00.000Z",
        "timeUs": "1746108180000000",
        "text": "Fine-tuning small LLMs is underrated",
        "langs": "[en, pt]",
        "operation": "create",
        "rkey": "3lbmrabc",
        "parentUri": "at://did:plc:bob/app.bsky.feed.post/p1",
        "rootUri": "at://did:plc:bob/app.bsky.feed.post/r1",
        "uri": "at://did:plc:alice/app.bsky.feed.post/3lbmrabc",
    }


def test_delete_event_has_no_record():
    event = JetstreamEvent.from_json(_jetstream_message(operation="delete", record=None))
    fields = event.to_fields()
    assert fields["operation"] == "delete"
    assert fields["text"] == ""
    assert fields["langs"] == ""
    assert fields["uri"].endswith("/3lbmrabc")


def test_event_without_commit():
    event = JetstreamEvent.from_json(json.dumps({"did": "did:plc:x", "time_us": 1, "kind": "identity"}))
    assert event.uri == ""
    assert event.to_fields()["rkey"] == ""


def test_missing_langs_encode_as_empty_list():
    raw = json.loads(_jetstream_message())
    del raw["commit"]["record"]["langs"]
    assert JetstreamEvent.from_dict(raw).to_fields()["langs"] == "[]"


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    '{"time_us": "soon"}',
    '{"did": 7}',
    '{"did": "d", "commit": "oops"}',
    '{"did": "d", "commit": {"rkey": ["r"]}}',
    '{"did": "d", "commit": {"rkey": "r", "record": {"text": "hi", "reply": {"parent": "oops"}}}}',
    '{"did": "d", "commit": {"rkey": "r", "record": {"text": "hi", "reply": {"root": 3}}}}',
    '{"did": "d", "commit": {"rkey": "r", "record": {"text": "hi", "langs": [null]}}}',
    '{"did": "d", "commit": {"rkey": "r", "record": {"text": "hi", "langs": "en"}}}',
    '{"did": "d", "commit": {"rkey": "r", "record": {"text": {"nested": true}}}}',
])
def test_invalid_messages_raise(raw):
    with pytest.raises(EventParseError):
        JetstreamEvent.from_json(raw)


# ── StreamEvent ──

def test_stream_event_from_fields_round_trips_through_stream():
    fields = JetstreamEvent.from_json(_jetstream_message()).to_fields()
    event = StreamEvent.from_fields(fields, "1-0")
    assert event.id == event.uri == fields["uri"]
    assert event.langs == ["en", "pt"]
    assert event.stream_entry_id == "1-0"
    assert event.time_us == 1746108180000000
    assert StreamEvent.from_fields(event.to_fields()).root_uri == fields["rootUri"]


def test_stream_event_bad_time_defaults_to_zero():
    assert StreamEvent.from_fields({"timeUs": "x"}).time_us == 0


@pytest.mark.parametrize("text,operation,expected", [
    ("hello", "create", True),
    ("   ", "create", False),
    ("", "create", False),
    ("hello", "delete", False),
    ("hello", "update", True),
])
def test_is_candidate(text, operation, expected):
    assert is_candidate(StreamEvent(text=text, operation=operation)) is expected


# ── Hour buckets ──

def test_hour_bucket_truncates_to_hour():
    now = datetime(2025, 5, 1, 14, 59, 33, 120)
    assert hour_bucket(now) == "2025-05-01T14:00"
    assert topk_key(now) == "topics-topk:2025-05-01T14:00"
    assert cms_key(now) == "topics-cms:2025-05-01T14:00"


def test_same_hour_same_key():
    assert topk_key(datetime(2025, 5, 1, 14, 0)) == topk_key(datetime(2025, 5, 1, 14, 59))
    assert topk_key(datetime(2025, 5, 1, 14, 59)) != topk_key(datetime(2025, 5, 1, 15, 0))


# ── Classification ──

def test_any_above_is_strict():
    result = ClassificationResult(text="t", labels=["AI"], scores=[0.9])
    assert result.best() == ("AI", 0.9)
    assert not result.any_above(0.9)
    assert result.any_above(0.89)
    assert ClassificationResult(text="t").best() is None


# ── Bot I/O ──

def test_thread_root_defaults_to_post():
    post = SearchPost(uri="at://a/p/1", cid="c1")
    assert post.thread_root == PostRef("at://a/p/1", "c1")
    root = PostRef("at://a/p/0", "c0")
    assert SearchPost(uri="at://a/p/1", cid="c1", root=root).thread_root == root


def test_split_short_text_is_one_chunk():
    assert split_into_chunks("What's trending?") == ["What's trending?"]
    assert split_into_chunks("") == []


def test_split_respects_max_length_and_keeps_words():
    text = " ".join(f"word{i}" for i in range(200))
    chunks = split_into_chunks(text, 50)
    assert all(len(c) <= 50 for c in chunks)
    assert " ".join(chunks).split() == text.split()


def test_split_hard_cuts_long_words():
    chunks = split_into_chunks("ok " + "x" * 25 + " end", 10)
    assert chunks == ["ok", "x" * 10, "x" * 10, "x" * 5 + " end"]
