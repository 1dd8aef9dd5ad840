"""
Embedding worker.

Generates or refreshes a contract's embeddings from its stored text.

Modes:
- full: chunk the whole text; skip if every chunk hash is already
  stored, otherwise embed everything and then replace the stored rows
- incremental: only the requested chunk indexes, and only chunks whose
  hash is not stored yet
"""

from typing import Any
from uuid import UUID

import structlog

from contractguard.config import Settings
from contractguard.errors import AnalysisFailedError, NotFoundError
from contractguard.models.embedding import EmbeddingRecord
from contractguard.services.chunker import TextChunker
from contractguard.services.embedding_service import EmbeddingService
from contractguard.storage.postgres import PostgresAdapter
from contractguard.storage.redis_cache import RedisCache
from contractguard.workers.queue import Job, JobQueue
from contractguard.workers.runner import ProgressCallback, Worker

logger = structlog.get_logger(__name__)

TOTAL_STEPS = 4


class EmbeddingJobProcessor:
    """Embeds a contract's chunks, skipping content already stored."""

    def __init__(
        self,
        db: PostgresAdapter,
        chunker: TextChunker,
        embedding_service: EmbeddingService,
        cache: RedisCache | None = None,
    ):
        self.db = db
        self.chunker = chunker
        self.embedding_service = embedding_service
        self.cache = cache

    async def __call__(self, job: Job, progress: ProgressCallback) -> dict[str, Any]:
        contract_id = UUID(job.data["contract_id"])
        tenant_id = UUID(job.data["tenant_id"])
        chunk_indexes = job.data.get("chunk_indexes") or []
        incremental = bool(chunk_indexes)
        mode = "incremental" if incremental else "full"

        log = logger.bind(job_id=job.id, contract_id=str(contract_id), mode=mode)
        log.info("embedding_job_started")

        await progress(1, TOTAL_STEPS, "Fetching contract text")
        contract = await self.db.get_contract(contract_id, tenant_id)
        if contract is None:
            raise NotFoundError("Contract", str(contract_id))
        if not contract.raw_text:
            raise AnalysisFailedError(
                "Contract has no extracted text. Run full analysis first.",
                contract_id=str(contract_id),
            )

        await progress(2, TOTAL_STEPS, "Chunking contract text")
        chunks = self.chunker.chunk(contract.raw_text)
        if incremental:
            wanted = set(chunk_indexes)
            chunks = [c for c in chunks if c.index in wanted]

        if not chunks:
            log.info("embedding_job_no_chunks")
            return {"mode": mode, "inserted": 0, "skipped": 0}

        existing = await self.db.get_existing_chunk_hashes(contract_id)
        new_chunks = [c for c in chunks if c.content_hash not in existing]
        log.debug(
            "embedding_dedup_complete",
            total=len(chunks),
            existing=len(existing),
            new=len(new_chunks),
        )

        if not new_chunks:
            log.info("embedding_job_up_to_date")
            return {"mode": mode, "inserted": 0, "skipped": len(chunks)}

        to_embed = new_chunks if incremental else chunks

        await progress(3, TOTAL_STEPS, "Generating embeddings")
        results = await self.embedding_service.embed_batch(to_embed)

        await progress(4, TOTAL_STEPS, "Persisting embeddings")
        # Old rows are dropped only once the replacement vectors exist.
        if not incremental:
            await self.db.delete_embeddings(contract_id)
        text_by_index = {c.index: c.text for c in to_embed}
        inserted = await self.db.insert_embeddings([
            EmbeddingRecord(
                contract_id=contract_id,
                chunk_index=r.chunk_index,
                chunk_text=text_by_index[r.chunk_index],
                chunk_hash=r.chunk_hash,
                embedding=r.embedding,
            )
            for r in results
        ])

        if self.cache is not None:
            await self.cache.invalidate_tenant_search(tenant_id)

        skipped = len(chunks) - len(to_embed)
        log.info("embedding_job_complete", inserted=inserted, skipped=skipped)
        return {"mode": mode, "inserted": inserted, "skipped": skipped}


def build_embedding_worker(
    queue: JobQueue,
    processor: EmbeddingJobProcessor,
    settings: Settings,
) -> Worker:
    """Embedding worker; cheaper per call, so more parallelism."""
    return Worker(
        queue,
        processor,
        concurrency=settings.embedding_concurrency,
        lock_duration=settings.lock_duration_seconds,
        lock_renew=settings.lock_renew_seconds,
        stalled_interval=settings.stalled_interval_seconds,
        max_stalled_count=settings.max_stalled_count,
    )
