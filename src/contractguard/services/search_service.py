"""
Semantic retrieval over a tenant's analyzed contracts.

Flow:
1. Validate the query and clamp the limit
2. Resolve the scope to concrete contract IDs (ready contracts only)
3. Check the cache, keyed by tenant, query, limit, min score and scope
4. On a miss, embed the query and run the pgvector ANN search,
   over-fetching so the score filter can still fill the limit
5. Drop results below the min score, truncate, attach relevance labels
"""

import time
from uuid import UUID

import structlog

from contractguard.config import Settings
from contractguard.errors import ServiceUnavailableError, ValidationError
from contractguard.models.api import SearchRequest, SearchResponse, SearchResult
from contractguard.models.contract import ContractStatus
from contractguard.models.embedding import RelevanceLabel
from contractguard.services.embedding_service import EmbeddingService
from contractguard.storage.postgres import PostgresAdapter
from contractguard.storage.redis_cache import RedisCache, make_search_key

logger = structlog.get_logger(__name__)


class RetrievalEngine:
    """Cached semantic search scoped to one tenant."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        db: PostgresAdapter,
        cache: RedisCache,
        settings: Settings,
    ):
        self.embedding_service = embedding_service
        self.db = db
        self.cache = cache
        self.default_limit = settings.search_default_limit
        self.max_limit = settings.search_max_limit
        self.default_min_score = settings.search_min_score
        self.cache_ttl = settings.search_cache_ttl
        self.max_query_length = settings.search_max_query_length
        self.overfetch_factor = settings.search_overfetch_factor

    async def resolve_scope(self, tenant_id: UUID, request: SearchRequest) -> list[UUID]:
        """Contract IDs the search may touch."""
        ready_ids = await self.db.list_contract_ids(
            tenant_id,
            status=ContractStatus.READY,
            contract_types=request.contract_types,
        )
        if not request.contract_ids:
            return ready_ids

        # Explicit IDs never reach outside the tenant's ready contracts.
        allowed = set(ready_ids)
        return [cid for cid in dict.fromkeys(request.contract_ids) if cid in allowed]

    async def search(self, tenant_id: UUID, request: SearchRequest) -> SearchResponse:
        """Run a semantic search for a tenant."""
        query = request.query.strip()
        if not query:
            raise ValidationError("Search query cannot be empty")
        if len(request.query) > self.max_query_length:
            raise ValidationError(
                f"Search query too long (max {self.max_query_length} characters)"
            )

        limit = min(request.limit or self.default_limit, self.max_limit)
        min_score = request.min_score if request.min_score is not None else self.default_min_score

        logger.info(
            "search_started",
            tenant_id=str(tenant_id),
            query=query[:80],
            limit=limit,
            min_score=min_score,
        )

        scope = await self.resolve_scope(tenant_id, request)
        if not scope:
            logger.info("search_empty_scope", tenant_id=str(tenant_id))
            return SearchResponse(query=request.query)

        cache_key = make_search_key(
            tenant_id,
            query,
            limit,
            min_score,
            contract_ids=request.contract_ids,
            contract_types=[t.value for t in request.contract_types or []],
        )
        timings = {"embedding": 0, "search": 0}

        async def run_search() -> list[dict]:
            results = await self._search_uncached(query, scope, limit, min_score, timings)
            return [r.model_dump(mode="json") for r in results]

        payload, cached = await self.cache.get_or_set(cache_key, run_search, self.cache_ttl)
        results = [SearchResult.model_validate(item) for item in payload]

        logger.info(
            "search_complete",
            tenant_id=str(tenant_id),
            results=len(results),
            cached=cached,
            embedding_ms=timings["embedding"],
            search_ms=timings["search"],
        )
        return SearchResponse(
            query=request.query,
            results=results,
            total_results=len(results),
            cached=cached,
            embedding_latency=timings["embedding"],
            search_latency=timings["search"],
        )

    async def _search_uncached(
        self,
        query: str,
        scope: list[UUID],
        limit: int,
        min_score: float,
        timings: dict[str, int],
    ) -> list[SearchResult]:
        started = time.perf_counter()
        try:
            query_vector = await self.embedding_service.embed_query(query)
        except Exception as e:
            logger.error("search_query_embedding_failed", error=str(e))
            raise ServiceUnavailableError(
                "embedding", "Embedding service unavailable. Please try again."
            ) from e
        timings["embedding"] = int((time.perf_counter() - started) * 1000)

        started = time.perf_counter()
        hits = await self.db.semantic_search(query_vector, scope, limit * self.overfetch_factor)
        timings["search"] = int((time.perf_counter() - started) * 1000)

        logger.debug("search_ann_complete", raw=len(hits), search_ms=timings["search"])

        kept = [hit for hit in hits if hit.similarity_score >= min_score][:limit]
        return [
            SearchResult(
                embedding_id=hit.embedding_id,
                document_id=hit.contract_id,
                chunk_text=hit.chunk_text,
                chunk_index=hit.chunk_index,
                similarity_score=hit.similarity_score,
                relevance_label=RelevanceLabel.from_score(hit.similarity_score),
                contract_name=hit.contract_name,
                contract_type=hit.contract_type,
                risk_score=hit.risk_score,
            )
            for hit in kept
        ]
