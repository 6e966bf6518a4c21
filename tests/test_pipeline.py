"""Ingest, filter, enrichment and topic stages over in-memory fakes."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime

from conftest import FakeBloom, FakeCounter, FakeEmbedder, FakeExtractor, post_fields
from application.services.consumer import consume_until_stopped, consumer_names
from application.services.enrichment import EMBEDDINGS_BLOOM, EMBEDDINGS_GROUP, EnrichmentService
from application.services.filtering import FILTER_GROUP, FILTERED_STREAM, SOURCE_STREAM, FilterService
from application.services.ingest import JETSTREAM_STREAM, IngestService
from application.services.topics import TOPICS_BLOOM, TOPICS_GROUP, TopicService
from domain.exceptions import ClassificationError, EmbeddingError, StoreError
from domain.models import JetstreamEvent, cms_key, topk_key

NOW = datetime(2025, 5, 1, 14, 30)


class _KeywordClassifier:
    """On-topic when the text mentions AI."""

    def __init__(self):
        self.prepared = False
        self.seen: list[str] = []

    async def prepare(self) -> None:
        self.prepared = True

    async def is_related(self, events):
        self.seen.extend(e.text for e in events)
        return [(e, "AI" in e.text) for e in events]


class _ScriptedSource:
    def __init__(self, messages):
        self.messages = messages
        self.stopped = False

    async def run(self, on_message):
        for message in self.messages:
            await on_message(message)

    async def stop(self):
        self.stopped = True


# ---------------------------------------------------------------------------
# Consumer loop
# ---------------------------------------------------------------------------

def test_consumer_names():
    assert consumer_names(3) == ["consumer-1", "consumer-2", "consumer-3"]


def test_consumer_survives_domain_errors_until_stopped():
    calls = []

    async def _run():
        stop = asyncio.Event()

        async def step():
            calls.append(len(calls))
            if len(calls) == 1:
                raise StoreError("redis down")
            if len(calls) == 3:
                stop.set()

        await consume_until_stopped(step, stop, "test", error_pause_s=0.01)

    asyncio.run(_run())
    assert len(calls) == 3


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------

def test_ingest_publishes_parsed_events_and_drops_garbage(broker):
    message = json.dumps({
        "did": "did:plc:alice",
        "time_us": 1,
        "kind": "commit",
        "commit": {"operation": "create", "rkey": "k1", "record": {"text": "AI is neat", "langs": ["en"]}},
    })
    service = IngestService(_ScriptedSource([message, "{broken"]), broker)
    asyncio.run(service.run())

    assert service.published == 1
    assert service.dropped == 1
    [(_, fields)] = broker.streams[JETSTREAM_STREAM]
    assert fields["text"] == "AI is neat"
    assert fields["langs"] == "[en]"
    assert fields["uri"] == "at://did:plc:alice/app.bsky.feed.post/k1"


def test_ingest_drops_when_redis_refuses(broker):
    async def _refuse(stream, fields):
        raise StoreError("OOM")

    broker.add = _refuse
    service = IngestService(_ScriptedSource(['{"did": "d", "time_us": 1}']), broker)
    asyncio.run(service.run())
    assert (service.published, service.dropped) == (0, 1)


def test_ingest_drops_malformed_messages_and_keeps_going(broker):
    bad_reply = json.dumps({
        "did": "d", "time_us": 1,
        "commit": {"rkey": "r", "record": {"text": "hi", "reply": {"parent": "oops"}}},
    })
    bad_langs = json.dumps({"did": "d", "commit": {"rkey": "r", "record": {"text": "hi", "langs": [None]}}})
    good = json.dumps({"did": "d", "time_us": 2, "commit": {"rkey": "ok", "record": {"text": "AI"}}})
    service = IngestService(_ScriptedSource([bad_reply, bad_langs, good]), broker)
    asyncio.run(service.run())

    assert (service.published, service.dropped) == (1, 2)
    [(_, fields)] = broker.streams[JETSTREAM_STREAM]
    assert fields["rkey"] == "ok"


def test_ingest_drops_when_to_fields_blows_up(broker, monkeypatch):
    def _boom(self):
        raise KeyError("rkey")

    monkeypatch.setattr(JetstreamEvent, "to_fields", _boom)
    service = IngestService(_ScriptedSource(['{"did": "d", "time_us": 1}']), broker)
    asyncio.run(service.run())
    assert (service.published, service.dropped) == (0, 1)


def test_ingest_stop_stops_source(broker):
    source = _ScriptedSource([])
    asyncio.run(IngestService(source, broker).stop())
    assert source.stopped


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------

def _fill(broker, stream, rows):
    async def _add():
        for fields in rows:
            await broker.add(stream, fields)
    asyncio.run(_add())


def test_filter_keeps_related_posts(broker, events):
    _fill(broker, SOURCE_STREAM, [
        post_fields("1", "New AI model released"),
        post_fields("2", "Lunch was great"),
        post_fields("3", "", operation="delete"),
        post_fields("4", "   "),
        post_fields("5", "AI agents everywhere"),
    ])
    classifier = _KeywordClassifier()
    service = FilterService(broker, classifier, events, read_count=10)
    asyncio.run(service.setup())
    stats = asyncio.run(service.process_batch())

    assert classifier.prepared
    assert classifier.seen == ["New AI model released", "Lunch was great", "AI agents everywhere"]
    assert (stats.processed, stats.stored) == (5, 2)
    assert [f["text"] for _, f in broker.streams[FILTERED_STREAM]] == [
        "New AI model released", "AI agents everywhere",
    ]
    assert set(events.saved) == {
        "at://did:plc:alice/app.bsky.feed.post/1",
        "at://did:plc:alice/app.bsky.feed.post/5",
    }
    assert sorted(broker.acked[(SOURCE_STREAM, FILTER_GROUP)]) == ["1-0", "2-0", "3-0", "4-0", "5-0"]


def test_filter_reads_in_batches(broker, events):
    _fill(broker, SOURCE_STREAM, [post_fields(str(i), f"AI post {i}") for i in range(7)])
    service = FilterService(broker, _KeywordClassifier(), events, read_count=5)
    first = asyncio.run(service.process_batch())
    second = asyncio.run(service.process_batch())
    third = asyncio.run(service.process_batch())
    assert (first.processed, second.processed, third.processed) == (5, 2, 0)
    assert (first + second).stored == 7


def test_filter_publish_failure_still_acks(broker, events):
    _fill(broker, SOURCE_STREAM, [
        post_fields("1", "AI one"),
        post_fields("2", "AI two"),
        post_fields("3", "AI three"),
    ])
    add = broker.add

    async def _flaky_add(stream, fields):
        if stream == FILTERED_STREAM and fields["rkey"] == "2":
            raise StoreError("XADD failed")
        return await add(stream, fields)

    broker.add = _flaky_add
    stats = asyncio.run(FilterService(broker, _KeywordClassifier(), events, read_count=10).process_batch())

    assert stats.stored == 2
    assert [f["rkey"] for _, f in broker.streams[FILTERED_STREAM]] == ["1", "3"]
    assert sorted(broker.acked[(SOURCE_STREAM, FILTER_GROUP)]) == ["1-0", "2-0", "3-0"]


def test_filter_classifier_failure_acks_whole_batch(broker, events):
    class _Broken(_KeywordClassifier):
        async def is_related(self, events):
            raise ClassificationError("model crashed")

    _fill(broker, SOURCE_STREAM, [post_fields("1", "AI one"), post_fields("2", "", operation="delete")])
    stats = asyncio.run(FilterService(broker, _Broken(), events).process_batch())

    assert (stats.processed, stats.stored) == (2, 0)
    assert FILTERED_STREAM not in broker.streams
    assert sorted(broker.acked[(SOURCE_STREAM, FILTER_GROUP)]) == ["1-0", "2-0"]


def test_filter_store_failure_keeps_published_events(broker, events):
    async def _refuse(batch):
        raise StoreError("HSET failed")

    events.save_all = _refuse
    _fill(broker, SOURCE_STREAM, [post_fields("1", "AI one")])
    stats = asyncio.run(FilterService(broker, _KeywordClassifier(), events).process_batch())

    assert stats.stored == 1
    assert len(broker.streams[FILTERED_STREAM]) == 1
    assert broker.acked[(SOURCE_STREAM, FILTER_GROUP)] == ["1-0"]


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

def test_enrichment_embeds_each_post_once(broker, events):
    bloom = FakeBloom()
    embedder = FakeEmbedder()
    _fill(broker, FILTERED_STREAM, [
        post_fields("1", "AI one"),
        post_fields("2", "AI two"),
        post_fields("1", "AI one"),
    ])
    service = EnrichmentService(broker, bloom, embedder, events, num_consumers=2, read_count=2)
    asyncio.run(service.setup())

    first = asyncio.run(service.process_batch("consumer-1"))
    second = asyncio.run(service.process_batch("consumer-2"))

    assert (first.stored, second.stored) == (2, 0)
    assert embedder.calls == [["AI one", "AI two"]]
    assert set(events.embeddings) == {
        "at://did:plc:alice/app.bsky.feed.post/1",
        "at://did:plc:alice/app.bsky.feed.post/2",
    }
    assert len(bloom.filters[EMBEDDINGS_BLOOM]) == 2
    assert sorted(broker.acked[(FILTERED_STREAM, EMBEDDINGS_GROUP)]) == ["1-0", "2-0", "3-0"]


def test_enrichment_failure_still_acks(broker, events):
    class _Broken(FakeEmbedder):
        async def embed(self, texts):
            raise EmbeddingError("model crashed")

    _fill(broker, FILTERED_STREAM, [post_fields("1", "AI one")])
    service = EnrichmentService(broker, FakeBloom(), _Broken(), events)
    stats = asyncio.run(service.process_batch("consumer-1"))
    assert stats.stored == 0
    assert events.embeddings == {}
    assert broker.acked[(FILTERED_STREAM, EMBEDDINGS_GROUP)] == ["1-0"]


def test_enrichment_store_failure_still_acks_every_entry(broker, events):
    update = events.update_embedding

    async def _flaky_update(event, vector):
        if event.text == "AI two":
            raise StoreError("HSET failed")
        await update(event, vector)

    events.update_embedding = _flaky_update
    bloom = FakeBloom()
    _fill(broker, FILTERED_STREAM, [
        post_fields("1", "AI one"),
        post_fields("2", "AI two"),
        post_fields("3", "AI three"),
    ])
    stats = asyncio.run(
        EnrichmentService(broker, bloom, FakeEmbedder(), events, read_count=10).process_batch("c"),
    )

    assert (stats.processed, stats.stored) == (3, 2)
    assert "at://did:plc:alice/app.bsky.feed.post/2" not in events.embeddings
    assert sorted(broker.acked[(FILTERED_STREAM, EMBEDDINGS_GROUP)]) == ["1-0", "2-0", "3-0"]
    assert len(bloom.filters[EMBEDDINGS_BLOOM]) == 3


def test_enrichment_bloom_outage_still_embeds_and_acks(broker, events):
    class _DownBloom(FakeBloom):
        async def exists(self, name, item):
            raise StoreError("BF.EXISTS failed")

        async def add(self, name, item):
            raise StoreError("BF.ADD failed")

    _fill(broker, FILTERED_STREAM, [post_fields("1", "AI one")])
    stats = asyncio.run(EnrichmentService(broker, _DownBloom(), FakeEmbedder(), events).process_batch("c"))

    assert stats.stored == 1
    assert broker.acked[(FILTERED_STREAM, EMBEDDINGS_GROUP)] == ["1-0"]


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------

def _topic_service(broker, events, extractor, cms, topk, bloom=None):
    return TopicService(
        broker, bloom or FakeBloom(), cms, topk, extractor, events,
        num_consumers=1, read_count=10, clock=lambda: NOW,
    )


def test_topics_counted_in_current_hour(broker, events):
    cms, topk = FakeCounter(), FakeCounter()
    extractor = FakeExtractor({"agents": ["AI Agents", "LLMs"], "diffusion": ["Diffusion Models"]})
    _fill(broker, FILTERED_STREAM, [
        post_fields("1", "AI agents ship"),
        post_fields("2", "AI diffusion art"),
        post_fields("3", "more agents talk"),
        post_fields("4", "nothing relevant"),
    ])
    service = _topic_service(broker, events, extractor, cms, topk)
    stats = asyncio.run(service.process_batch("consumer-1"))

    assert stats.stored == 3
    assert asyncio.run(cms.query(cms_key(NOW), "AI Agents")) == 2
    assert asyncio.run(topk.list(topk_key(NOW)))[0] == "AI Agents"
    assert events.topics["at://did:plc:alice/app.bsky.feed.post/2"] == ["Diffusion Models"]
    assert "at://did:plc:alice/app.bsky.feed.post/4" not in events.topics
    assert len(broker.acked[(FILTERED_STREAM, TOPICS_GROUP)]) == 4


def test_topics_skip_seen_posts_and_survive_failures(broker, events):
    bloom = FakeBloom()
    asyncio.run(bloom.add(TOPICS_BLOOM, "at://did:plc:alice/app.bsky.feed.post/1"))
    extractor = FakeExtractor({"AI": ["LLMs"]}, fail_on="explode")
    _fill(broker, FILTERED_STREAM, [
        post_fields("1", "AI seen before"),
        post_fields("2", "AI explode"),
        post_fields("3", "AI fresh"),
    ])
    cms, topk = FakeCounter(), FakeCounter()
    stats = asyncio.run(_topic_service(broker, events, extractor, cms, topk, bloom).process_batch("c"))

    assert stats.stored == 1
    assert list(events.topics) == ["at://did:plc:alice/app.bsky.feed.post/3"]
    assert asyncio.run(cms.query(cms_key(NOW), "LLMs")) == 1
    assert len(broker.acked[(FILTERED_STREAM, TOPICS_GROUP)]) == 3


def test_topics_counter_failure_still_acks_every_entry(broker, events):
    class _DownCounter(FakeCounter):
        async def incr_by(self, name, counts):
            raise StoreError("CMS down")

    bloom = FakeBloom()
    _fill(broker, FILTERED_STREAM, [
        post_fields("1", "AI agents ship"),
        post_fields("2", "AI agents again"),
        post_fields("3", "AI agents forever"),
    ])
    extractor = FakeExtractor({"agents": ["AI Agents"]})
    service = _topic_service(broker, events, extractor, _DownCounter(), FakeCounter(), bloom)
    stats = asyncio.run(service.process_batch("c"))

    assert (stats.processed, stats.stored) == (3, 0)
    assert events.topics == {}
    assert sorted(broker.acked[(FILTERED_STREAM, TOPICS_GROUP)]) == ["1-0", "2-0", "3-0"]
    assert len(bloom.filters[TOPICS_BLOOM]) == 3


def test_topics_repository_failure_is_per_entry(broker, events):
    update = events.update_topics

    async def _flaky_update(event, topics):
        if event.text.endswith("again"):
            raise StoreError("HSET failed")
        await update(event, topics)

    events.update_topics = _flaky_update
    _fill(broker, FILTERED_STREAM, [post_fields("1", "AI agents ship"), post_fields("2", "AI agents again")])
    service = _topic_service(broker, events, FakeExtractor({"agents": ["AI Agents"]}), FakeCounter(), FakeCounter())
    stats = asyncio.run(service.process_batch("c"))

    assert stats.stored == 1
    assert list(events.topics) == ["at://did:plc:alice/app.bsky.feed.post/1"]
    assert len(broker.acked[(FILTERED_STREAM, TOPICS_GROUP)]) == 2
