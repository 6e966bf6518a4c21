"""
factory - Composition root for the Bluesky stream pipeline.

ALL dependency wiring happens here. No other module constructs its own
dependencies. Adapters (CLI, REST) call this factory to get fully
configured pipeline stages and bot services.

Usage:
    from factory import ServiceFactory
    from infrastructure.config import Settings

    config = Settings.from_env()
    factory = ServiceFactory(config)
    await factory.initialize()  # one-time startup

    filter_service = factory.create_filter_service()
    await filter_service.run(stop_event)

    bot = factory.bot_service()
    reply = await bot.process_user_request("What's trending?")
"""

from __future__ import annotations

import logging
from typing import Optional

from infrastructure.config import Settings
from infrastructure.persistence.connection import RedisConnection
from infrastructure.persistence.event_repo import RedisEventRepository, event_index_spec
from infrastructure.persistence.migrations import run_migrations
from infrastructure.persistence.probabilistic import (
    BloomFilterService,
    CountMinSketchService,
    TopKService,
)
from infrastructure.persistence.streams import RedisStreamService
from infrastructure.persistence.topic_repo import RedisTopicRegistry
from infrastructure.persistence.vector_repos import (
    RedisFilteringExampleRepository,
    RedisRoutingRepository,
    RedisSemanticCacheRepository,
    cache_index_spec,
    example_index_spec,
    routing_index_spec,
)
from infrastructure.ml.embeddings import LangChainEmbedder, build_embeddings
from infrastructure.ml.content_filter import ReferenceContentClassifier, ZeroShotContentClassifier
from infrastructure.llm.topic_extractor import TopicExtractor
from infrastructure.llm.answer_writer import AnswerWriter
from infrastructure.bluesky.client import BlueskyClient
from infrastructure.bluesky.jetstream import JetstreamClient
from application.services.ingest import IngestService
from application.services.filtering import FILTER_GROUP, FILTERED_STREAM, SOURCE_STREAM, FilterService
from application.services.enrichment import EMBEDDINGS_BLOOM, EMBEDDINGS_GROUP, EnrichmentService
from application.services.topics import TOPICS_BLOOM, TOPICS_GROUP, TopicService
from application.services.semantic_router import SemanticRouter
from application.services.semantic_cache import SemanticCache
from application.services.trending import TrendingTopicsAnalyzer
from application.services.summarizer import PostSummarizer
from application.services.bot import PROCESSED_POSTS_BLOOM, BotService

logger = logging.getLogger(__name__)

CONSUMER_GROUPS = [
    (SOURCE_STREAM, FILTER_GROUP),
    (FILTERED_STREAM, EMBEDDINGS_GROUP),
    (FILTERED_STREAM, TOPICS_GROUP),
]
BLOOM_FILTERS = [EMBEDDINGS_BLOOM, TOPICS_BLOOM, PROCESSED_POSTS_BLOOM]


class ServiceFactory:
    """Composition root: wires all dependencies together.

    Call initialize() once at startup, then create services as needed.
    Models and API clients are built on first use so that a stage only
    loads what it needs (the ingest stage never touches a model).
    """

    def __init__(self, config: Settings):
        self._config = config
        self._connection = RedisConnection(config.redis_url)

        self._event_spec = event_index_spec(config.embedding_dimension)
        self._example_spec = example_index_spec(config.embedding_dimension)
        self._routing_spec = routing_index_spec(config.semantic_embedding_dimension)
        self._cache_spec = cache_index_spec(config.semantic_embedding_dimension)

        # Lazy singletons for expensive resources
        self._post_embedder: Optional[LangChainEmbedder] = None
        self._semantic_embedder: Optional[LangChainEmbedder] = None
        self._topic_extractor: Optional[TopicExtractor] = None
        self._bluesky: Optional[BlueskyClient] = None
        self._answer_writer: Optional[AnswerWriter] = None
        self._bot: Optional[BotService] = None
        self._initialized = False

    @property
    def config(self) -> Settings:
        return self._config

    async def initialize(self, load_routes: bool = False) -> None:
        """One-time startup: check Redis and create every search index.

        With load_routes, the default routing references are embedded and
        stored when the routing index is still empty.
        """
        logger.info("Initializing ServiceFactory...")
        await self._connection.ping()
        await run_migrations(
            self._connection,
            [self._event_spec, self._example_spec, self._routing_spec, self._cache_spec],
        )
        await self._create_groups_and_filters()
        if load_routes:
            await self.ensure_routes()
        self._initialized = True
        logger.info("ServiceFactory ready")

    async def ensure_routes(self, reload: bool = False) -> int:
        """Load the default routes if none are stored. Returns how many were added."""
        router = self.create_semantic_router()
        if reload:
            removed = await self.create_routing_repository().clear()
            logger.info("Removed %d routing references", removed)
        elif await router.references_loaded():
            logger.info("Routing references already loaded")
            return 0
        return await router.load_default_routes()

    async def check_dimensions(self) -> dict[str, tuple[int, int]]:
        """Probe both embedders. Maps index name → (configured, actual)."""
        post_dim = await self.post_embedder().dimension()
        semantic_dim = await self.semantic_embedder().dimension()
        result = {
            self._event_spec.name: (self._event_spec.dimension, post_dim),
            self._routing_spec.name: (self._routing_spec.dimension, semantic_dim),
        }
        for name, (configured, actual) in result.items():
            if configured != actual:
                logger.warning(
                    "Index %s is configured for %d dims but the model returns %d",
                    name, configured, actual,
                )
        return result

    async def healthy(self) -> bool:
        return await self._connection.is_alive()

    async def close(self) -> None:
        await self._connection.close()
        logger.info("Redis connection closed")

    # ------------------------------------------------------------------
    # Data stores
    # ------------------------------------------------------------------

    def create_stream_service(self) -> RedisStreamService:
        return RedisStreamService(self._connection, maxlen=self._config.stream_maxlen)

    def create_bloom_filter(self) -> BloomFilterService:
        return BloomFilterService(self._connection)

    def create_event_repository(self) -> RedisEventRepository:
        return RedisEventRepository(self._connection, self._event_spec)

    def create_routing_repository(self) -> RedisRoutingRepository:
        return RedisRoutingRepository(self._connection, self._routing_spec)

    def create_topic_registry(self) -> RedisTopicRegistry:
        return RedisTopicRegistry(self._connection)

    def create_topk(self) -> TopKService:
        return TopKService(self._connection)

    # ------------------------------------------------------------------
    # Models and external clients
    # ------------------------------------------------------------------

    def post_embedder(self) -> LangChainEmbedder:
        """Local embedder for vectors stored on posts."""
        if self._post_embedder is None:
            self._post_embedder = LangChainEmbedder(build_embeddings(
                provider=self._config.embedding_provider,
                model=self._config.embedding_model,
                openai_api_key=self._config.openai_api_key,
                ollama_base_url=self._config.ollama_base_url,
            ))
        return self._post_embedder

    def semantic_embedder(self) -> LangChainEmbedder:
        """Embedder for routing references and cached questions."""
        if self._semantic_embedder is None:
            self._semantic_embedder = LangChainEmbedder(build_embeddings(
                provider=self._config.semantic_embedding_provider,
                model=self._config.semantic_embedding_model,
                openai_api_key=self._config.openai_api_key,
                ollama_base_url=self._config.ollama_base_url,
            ))
        return self._semantic_embedder

    def topic_extractor(self) -> TopicExtractor:
        if self._topic_extractor is None:
            self._topic_extractor = TopicExtractor(
                self.create_topic_registry(),
                **self._llm_kwargs(),
            )
        return self._topic_extractor

    def bluesky_client(self) -> BlueskyClient:
        if self._bluesky is None:
            self._bluesky = BlueskyClient(
                handle=self._config.bluesky_handle,
                app_password=self._config.bluesky_app_password,
                service_url=self._config.bluesky_service_url,
                did=self._config.bluesky_did,
            )
        return self._bluesky

    def create_content_classifier(self):
        """ContentClassifier selected by FILTER_STRATEGY.

        "zero_shot" (default) - local NLI model against FILTER_LABELS
        "reference"           - similarity to stored example posts
        """
        strategy = self._config.filter_strategy
        if strategy == "reference":
            logger.info("Content filter: reference examples (max distance %.2f)",
                        self._config.reference_max_distance)
            return ReferenceContentClassifier(
                embedder=self.post_embedder(),
                examples=RedisFilteringExampleRepository(self._connection, self._example_spec),
                max_distance=self._config.reference_max_distance,
            )
        if strategy != "zero_shot":
            raise ValueError(f"Unsupported FILTER_STRATEGY: '{strategy}'. Must be 'zero_shot' or 'reference'.")

        from infrastructure.ml.zero_shot import ZeroShotClassifier

        logger.info("Content filter: zero-shot %s on %s (threshold %.2f)",
                    self._config.zero_shot_model, self._config.filter_labels,
                    self._config.filter_threshold)
        return ZeroShotContentClassifier(
            classifier=ZeroShotClassifier(self._config.zero_shot_model),
            labels=self._config.filter_labels,
            threshold=self._config.filter_threshold,
        )

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def create_ingest_service(self) -> IngestService:
        return IngestService(
            source=JetstreamClient(self._config.jetstream_url),
            broker=self.create_stream_service(),
        )

    def create_filter_service(self) -> FilterService:
        return FilterService(
            broker=self.create_stream_service(),
            classifier=self.create_content_classifier(),
            events=self.create_event_repository(),
            read_count=self._config.read_count,
        )

    def create_enrichment_service(self) -> EnrichmentService:
        return EnrichmentService(
            broker=self.create_stream_service(),
            bloom=self.create_bloom_filter(),
            embedder=self.post_embedder(),
            events=self.create_event_repository(),
            num_consumers=self._config.num_consumers,
            read_count=self._config.read_count,
        )

    def create_topic_service(self) -> TopicService:
        return TopicService(
            broker=self.create_stream_service(),
            bloom=self.create_bloom_filter(),
            cms=CountMinSketchService(self._connection),
            topk=self.create_topk(),
            extractor=self.topic_extractor(),
            events=self.create_event_repository(),
            num_consumers=self._config.num_consumers,
            read_count=self._config.read_count,
        )

    # ------------------------------------------------------------------
    # Analysis bot
    # ------------------------------------------------------------------

    def create_semantic_router(self) -> SemanticRouter:
        return SemanticRouter(self.semantic_embedder(), self.create_routing_repository())

    def create_semantic_cache(self) -> SemanticCache:
        return SemanticCache(
            self.semantic_embedder(),
            RedisSemanticCacheRepository(self._connection, self._cache_spec),
            max_distance=self._config.cache_max_distance,
        )

    def create_trending_analyzer(self) -> TrendingTopicsAnalyzer:
        return TrendingTopicsAnalyzer(self.create_topk())

    def create_post_summarizer(self) -> PostSummarizer:
        return PostSummarizer(
            extractor=self.topic_extractor(),
            registry=self.create_topic_registry(),
            events=self.create_event_repository(),
        )

    def answer_writer(self) -> AnswerWriter:
        if self._answer_writer is None:
            self._answer_writer = AnswerWriter(**self._llm_kwargs())
        return self._answer_writer

    def bot_service(self) -> BotService:
        """The analysis bot, built once and shared by the CLI, REST and websocket."""
        self._ensure_initialized()
        if self._bot is None:
            self._bot = BotService(
                client=self.bluesky_client(),
                bloom=self.create_bloom_filter(),
                router=self.create_semantic_router(),
                cache=self.create_semantic_cache(),
                trending=self.create_trending_analyzer(),
                summarizer=self.create_post_summarizer(),
                writer=self.answer_writer(),
                handle=self._config.bluesky_handle,
                lookback_hours=self._config.bot_lookback_hours,
            )
        return self._bot

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _create_groups_and_filters(self) -> None:
        streams = self.create_stream_service()
        for stream, group in CONSUMER_GROUPS:
            await streams.create_group(stream, group)
        bloom = self.create_bloom_filter()
        for name in BLOOM_FILTERS:
            await bloom.create(name)

    def _llm_kwargs(self) -> dict:
        return {
            "provider": self._config.llm_provider,
            "model": self._config.active_llm_model,
            "ollama_base_url": self._config.ollama_base_url,
            "openai_api_key": self._config.openai_api_key,
            "groq_api_key": self._config.groq_api_key,
            "timeout": self._config.llm_timeout_s,
        }

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "ServiceFactory not initialized. Call await factory.initialize() first."
            )
