"""Tests for the analysis and embedding job processors."""

from unittest.mock import AsyncMock

import pytest

from contractguard.errors import AnalysisFailedError, NotFoundError, ProviderError
from contractguard.models.contract import Contract, ContractType, FileType
from contractguard.models.embedding import EmbeddingResult
from contractguard.pipeline.orchestrator import PipelineResult, PipelineStage
from contractguard.services.chunker import TextChunker
from contractguard.workers.analysis_worker import AnalysisJobProcessor, build_analysis_worker
from contractguard.workers.embedding_worker import EmbeddingJobProcessor, build_embedding_worker
from contractguard.workers.queue import EMBEDDING_QUEUE, Job, JobQueue


def long_text(sentences: int = 60) -> str:
    return " ".join(
        f"Clause {i} sets out the obligations of the supplier in detail." for i in range(sentences)
    )


async def no_progress(step, total, label):
    return None


def fake_embeddings(chunks):
    return [
        EmbeddingResult(
            chunk_index=c.index,
            chunk_hash=c.content_hash,
            embedding=[0.2] * 768,
            token_count=c.token_count,
        )
        for c in chunks
    ]


class TestAnalysisJobProcessor:

    @pytest.mark.asyncio
    async def test_builds_request_from_job(self, contract_id, tenant_id):
        pipeline = AsyncMock()
        pipeline.run.return_value = PipelineResult(
            contract_id=contract_id, stage=PipelineStage.READY, risk_score=55
        )
        job = Job(
            id=f"analysis:{contract_id}",
            queue="contract-analysis",
            data={
                "contract_id": str(contract_id),
                "tenant_id": str(tenant_id),
                "file_path": "t/msa.docx",
                "file_type": "docx",
                "contract_type": "MSA",
            },
        )

        result = await AnalysisJobProcessor(pipeline)(job, no_progress)

        request, progress = pipeline.run.await_args.args
        assert request.contract_id == contract_id
        assert request.tenant_id == tenant_id
        assert request.file_type == FileType.DOCX
        assert request.contract_type == ContractType.MSA
        assert progress is no_progress
        assert result["risk_score"] == 55
        assert result["stage"] == "ready"

    @pytest.mark.asyncio
    async def test_defaults_for_missing_optional_fields(self, contract_id, tenant_id):
        pipeline = AsyncMock()
        pipeline.run.return_value = PipelineResult(contract_id=contract_id, stage=PipelineStage.READY)
        job = Job(
            id="analysis:x",
            queue="contract-analysis",
            data={
                "contract_id": str(contract_id),
                "tenant_id": str(tenant_id),
                "file_path": "t/nda.pdf",
            },
        )

        await AnalysisJobProcessor(pipeline)(job, no_progress)

        request = pipeline.run.await_args.args[0]
        assert request.file_type == FileType.PDF
        assert request.contract_type == ContractType.OTHER

    @pytest.mark.asyncio
    async def test_pipeline_errors_propagate(self, contract_id, tenant_id):
        pipeline = AsyncMock()
        pipeline.run.side_effect = RuntimeError("extraction failed")
        job = Job(
            id="analysis:x",
            queue="contract-analysis",
            data={"contract_id": str(contract_id), "tenant_id": str(tenant_id), "file_path": "p"},
        )
        with pytest.raises(RuntimeError):
            await AnalysisJobProcessor(pipeline)(job, no_progress)

    def test_build_worker_uses_settings(self, settings):
        queue = AsyncMock(spec=JobQueue)
        queue.name = "contract-analysis"
        worker = build_analysis_worker(queue, AsyncMock(), settings)
        assert worker.concurrency == settings.analysis_concurrency
        assert worker.lock_duration == settings.lock_duration_seconds


@pytest.fixture
def chunker():
    return TextChunker(chunk_size=100, overlap=20)


@pytest.fixture
def embedding_db(contract_id, tenant_id):
    db = AsyncMock()
    db.get_contract.return_value = Contract(
        id=contract_id,
        tenant_id=tenant_id,
        name="Supply Agreement",
        file_path="t/supply.pdf",
        raw_text=long_text(),
    )
    db.get_existing_chunk_hashes.return_value = set()
    db.insert_embeddings.side_effect = lambda records: len(records)
    return db


@pytest.fixture
def embedder():
    embedder = AsyncMock()
    embedder.embed_batch.side_effect = fake_embeddings
    return embedder


@pytest.fixture
def processor(embedding_db, chunker, embedder, mock_cache):
    return EmbeddingJobProcessor(embedding_db, chunker, embedder, mock_cache)


def embedding_job(contract_id, tenant_id, chunk_indexes=None) -> Job:
    return Job(
        id=f"embed:{contract_id}",
        queue=EMBEDDING_QUEUE,
        data={
            "contract_id": str(contract_id),
            "tenant_id": str(tenant_id),
            "chunk_indexes": chunk_indexes or [],
        },
    )


class TestEmbeddingJobProcessor:

    @pytest.mark.asyncio
    async def test_full_mode_embeds_everything(
        self, processor, embedding_db, embedder, chunker, mock_cache, contract_id, tenant_id
    ):
        expected = chunker.chunk(long_text())

        result = await processor(embedding_job(contract_id, tenant_id), no_progress)

        assert result == {"mode": "full", "inserted": len(expected), "skipped": 0}
        embedding_db.delete_embeddings.assert_awaited_once_with(contract_id)
        records = embedding_db.insert_embeddings.await_args.args[0]
        assert [r.chunk_hash for r in records] == [c.content_hash for c in expected]
        mock_cache.invalidate_tenant_search.assert_awaited_once_with(tenant_id)

    @pytest.mark.asyncio
    async def test_full_mode_up_to_date(
        self, processor, embedding_db, embedder, chunker, contract_id, tenant_id
    ):
        chunks = chunker.chunk(long_text())
        embedding_db.get_existing_chunk_hashes.return_value = {c.content_hash for c in chunks}

        result = await processor(embedding_job(contract_id, tenant_id), no_progress)

        assert result == {"mode": "full", "inserted": 0, "skipped": len(chunks)}
        embedder.embed_batch.assert_not_awaited()
        embedding_db.delete_embeddings.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_full_mode_reembeds_all_when_any_changed(
        self, processor, embedding_db, embedder, chunker, contract_id, tenant_id
    ):
        chunks = chunker.chunk(long_text())
        embedding_db.get_existing_chunk_hashes.return_value = {chunks[0].content_hash}

        result = await processor(embedding_job(contract_id, tenant_id), no_progress)

        assert result["inserted"] == len(chunks)
        assert len(embedder.embed_batch.await_args.args[0]) == len(chunks)

    @pytest.mark.asyncio
    async def test_full_mode_keeps_rows_when_embedding_fails(
        self, processor, embedding_db, embedder, mock_cache, contract_id, tenant_id
    ):
        embedding_db.get_existing_chunk_hashes.return_value = {"stale-hash"}
        embedder.embed_batch.side_effect = ProviderError("rate limited", provider="jina")

        with pytest.raises(ProviderError):
            await processor(embedding_job(contract_id, tenant_id), no_progress)

        embedding_db.delete_embeddings.assert_not_awaited()
        embedding_db.insert_embeddings.assert_not_awaited()
        mock_cache.invalidate_tenant_search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_full_mode_deletes_after_embedding(
        self, processor, embedding_db, embedder, contract_id, tenant_id
    ):
        order = []

        def embed(chunks):
            order.append("embed")
            return fake_embeddings(chunks)

        def delete(cid):
            order.append("delete")
            return 3

        def insert(records):
            order.append("insert")
            return len(records)

        embedder.embed_batch.side_effect = embed
        embedding_db.delete_embeddings.side_effect = delete
        embedding_db.insert_embeddings.side_effect = insert

        await processor(embedding_job(contract_id, tenant_id), no_progress)

        assert order == ["embed", "delete", "insert"]

    @pytest.mark.asyncio
    async def test_incremental_only_new_requested_chunks(
        self, processor, embedding_db, embedder, chunker, contract_id, tenant_id
    ):
        chunks = chunker.chunk(long_text())
        assert len(chunks) >= 3
        embedding_db.get_existing_chunk_hashes.return_value = {chunks[0].content_hash}

        result = await processor(embedding_job(contract_id, tenant_id, [0, 2]), no_progress)

        assert result == {"mode": "incremental", "inserted": 1, "skipped": 1}
        embedded = embedder.embed_batch.await_args.args[0]
        assert [c.index for c in embedded] == [2]
        embedding_db.delete_embeddings.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_incremental_unknown_indexes(self, processor, embedder, contract_id, tenant_id):
        result = await processor(embedding_job(contract_id, tenant_id, [999]), no_progress)
        assert result == {"mode": "incremental", "inserted": 0, "skipped": 0}
        embedder.embed_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reports_progress(self, processor, contract_id, tenant_id):
        steps = []

        async def progress(step, total, label):
            steps.append((step, total))

        await processor(embedding_job(contract_id, tenant_id), progress)
        assert steps == [(1, 4), (2, 4), (3, 4), (4, 4)]

    @pytest.mark.asyncio
    async def test_missing_contract(self, processor, embedding_db, contract_id, tenant_id):
        embedding_db.get_contract.return_value = None
        with pytest.raises(NotFoundError):
            await processor(embedding_job(contract_id, tenant_id), no_progress)

    @pytest.mark.asyncio
    async def test_contract_without_text(self, processor, embedding_db, contract_id, tenant_id):
        embedding_db.get_contract.return_value.raw_text = None
        with pytest.raises(AnalysisFailedError) as exc_info:
            await processor(embedding_job(contract_id, tenant_id), no_progress)
        assert exc_info.value.contract_id == str(contract_id)

    def test_build_worker_uses_settings(self, settings, processor):
        queue = AsyncMock(spec=JobQueue)
        queue.name = EMBEDDING_QUEUE
        worker = build_embedding_worker(queue, processor, settings)
        assert worker.concurrency == settings.embedding_concurrency
        assert worker.processor is processor
