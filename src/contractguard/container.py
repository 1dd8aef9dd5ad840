"""
Service container.

Every client is built once per process from settings and injected into
the components that need it. The API lifespan and the CLI each own one
container and close it on shutdown.
"""

from dataclasses import dataclass

import httpx
import structlog
from redis.asyncio import Redis

from contractguard.config import Settings
from contractguard.pipeline.orchestrator import AnalysisPipeline
from contractguard.services.chunker import TextChunker
from contractguard.services.clause_extractor import ClauseExtractor
from contractguard.services.contract_service import ContractService
from contractguard.services.embedding_service import EmbeddingService
from contractguard.services.llm_service import (
    JSON_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    CompletionProvider,
    GroqProvider,
    ProviderChain,
)
from contractguard.services.object_storage import ObjectStorage
from contractguard.services.risk_scorer import RiskScorer
from contractguard.services.search_service import RetrievalEngine
from contractguard.services.summarizer import Summarizer
from contractguard.services.text_extractor import TextExtractor
from contractguard.storage.postgres import PostgresAdapter
from contractguard.storage.redis_cache import RedisCache
from contractguard.workers.embedding_worker import EmbeddingJobProcessor
from contractguard.workers.queue import ANALYSIS_QUEUE, EMBEDDING_QUEUE, JobQueue

logger = structlog.get_logger(__name__)


def build_completion_providers(
    http_client: httpx.AsyncClient,
    settings: Settings,
    summary: bool = False,
) -> list[CompletionProvider]:
    """Primary then fallback model, configured for extraction or summaries."""
    if summary:
        profile = dict(
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            temperature=settings.summary_temperature,
            max_tokens=settings.summary_max_tokens,
            timeout=settings.summary_timeout,
            json_mode=False,
        )
    else:
        profile = dict(
            system_prompt=JSON_SYSTEM_PROMPT,
            temperature=settings.extraction_temperature,
            max_tokens=settings.extraction_max_tokens,
            timeout=settings.extraction_timeout,
            json_mode=True,
        )

    return [
        GroqProvider(
            http_client,
            api_key=settings.groq_api_key,
            model=model,
            api_url=settings.groq_api_url,
            max_retries=settings.llm_max_retries,
            base_retry_delay=settings.llm_base_retry_delay,
            default_retry_after=settings.llm_default_retry_after,
            **profile,
        )
        for model in (settings.primary_llm_model, settings.fallback_llm_model)
    ]


@dataclass
class ServiceContainer:
    """Process-wide clients and services."""
    settings: Settings
    http_client: httpx.AsyncClient
    redis: Redis
    db: PostgresAdapter
    cache: RedisCache
    analysis_queue: JobQueue
    embedding_queue: JobQueue
    storage: ObjectStorage
    chunker: TextChunker
    embedding_service: EmbeddingService
    pipeline: AnalysisPipeline
    embedding_processor: EmbeddingJobProcessor
    retrieval: RetrievalEngine
    contracts: ContractService

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        """Build every client and service exactly once."""
        http_client = httpx.AsyncClient()
        redis = Redis.from_url(settings.redis_url, decode_responses=True)
        db = PostgresAdapter(settings.postgres_url, echo=settings.debug)
        cache = RedisCache(redis, default_ttl=settings.search_cache_ttl)
        analysis_queue = JobQueue(redis, ANALYSIS_QUEUE)
        embedding_queue = JobQueue(redis, EMBEDDING_QUEUE)
        storage = ObjectStorage(settings.storage_dir)

        chunker = TextChunker(
            chunk_size=settings.chunk_token_size,
            overlap=settings.chunk_overlap_tokens,
            encoding=settings.chunk_encoding,
        )
        embedding_service = EmbeddingService(http_client, settings)

        extraction_chain = ProviderChain(build_completion_providers(http_client, settings))
        summary_providers = build_completion_providers(http_client, settings, summary=True)

        pipeline = AnalysisPipeline(
            db=db,
            storage=storage,
            extractor=TextExtractor(),
            chunker=chunker,
            embedding_service=embedding_service,
            clause_extractor=ClauseExtractor(
                extraction_chain,
                window_chars=settings.clause_window_chars,
                window_overlap=settings.clause_window_overlap_chars,
            ),
            risk_scorer=RiskScorer(extraction_chain, algo_weight=settings.algorithmic_weight),
            summarizer=Summarizer(summary_providers),
            cache=cache,
            min_word_count=settings.min_word_count,
            deep_risk_enabled=settings.deep_risk_enabled,
        )

        container = cls(
            settings=settings,
            http_client=http_client,
            redis=redis,
            db=db,
            cache=cache,
            analysis_queue=analysis_queue,
            embedding_queue=embedding_queue,
            storage=storage,
            chunker=chunker,
            embedding_service=embedding_service,
            pipeline=pipeline,
            embedding_processor=EmbeddingJobProcessor(db, chunker, embedding_service, cache),
            retrieval=RetrievalEngine(embedding_service, db, cache, settings),
            contracts=ContractService(db, cache, analysis_queue, embedding_queue, settings),
        )
        logger.info("service_container_ready", environment=settings.environment)
        return container

    async def aclose(self) -> None:
        """Release network clients and connection pools."""
        await self.http_client.aclose()
        await self.redis.aclose()
        await self.db.close()
        logger.info("service_container_closed")
