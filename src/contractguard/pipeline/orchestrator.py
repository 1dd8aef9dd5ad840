"""
Pipeline Orchestrator

Runs one contract through the analysis pipeline:

 1. Mark the contract as processing
 2. Download the source file
 3. Extract text (fails below the minimum word count)
 4. Chunk text
 5. Embeddings, clauses, dates and type detection, concurrently
 6. Persist embeddings and clauses
 7. Risk score and summary, concurrently
 8. Blend the deep risk score when available
 9. Persist final results and mark the contract ready
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable
from uuid import UUID

import structlog

from contractguard.errors import ExtractionError
from contractguard.models.clause import (
    ContractTypeDetection,
    DeepRiskResult,
    ExtractedClause,
    ExtractedDates,
)
from contractguard.models.contract import ContractStatus, ContractType, FileType
from contractguard.models.embedding import EmbeddingRecord, EmbeddingResult, TextChunk
from contractguard.services.chunker import TextChunker
from contractguard.services.clause_extractor import ClauseExtractor
from contractguard.services.embedding_service import EmbeddingService
from contractguard.services.object_storage import ObjectStorage
from contractguard.services.risk_scorer import RiskResult, RiskScorer
from contractguard.services.summarizer import SummaryInput, Summarizer
from contractguard.services.text_extractor import TextExtractor
from contractguard.storage.postgres import PostgresAdapter
from contractguard.storage.redis_cache import RedisCache

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int, str], Awaitable[None]]

TOTAL_STEPS = 9


class PipelineStage(str, Enum):
    """Pipeline execution stage."""
    PROCESSING = "processing"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    SCORING = "scoring"
    PERSISTING = "persisting"
    READY = "ready"
    FAILED = "failed"


@dataclass
class AnalysisRequest:
    """What the analysis worker needs to run one contract."""
    contract_id: UUID
    tenant_id: UUID
    file_path: str
    file_type: FileType = FileType.PDF
    contract_type: ContractType = ContractType.OTHER


@dataclass
class DocumentAnalysis:
    """Clause-level analysis of one document's text."""
    clauses: list[ExtractedClause]
    dates: ExtractedDates
    contract_type: ContractType
    counterparty: str | None
    risk: RiskResult
    deep_risk: DeepRiskResult | None
    final_score: int
    summary: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract_type": self.contract_type.value,
            "counterparty": self.counterparty,
            "effective_date": _iso(self.dates.effective_date),
            "expiration_date": _iso(self.dates.expiration_date),
            "auto_renewal": self.dates.auto_renewal,
            "risk_score": self.final_score,
            "algorithmic_score": self.risk.overall_score,
            "llm_score": self.deep_risk.risk_score if self.deep_risk else None,
            "top_risks": self.deep_risk.top_risks if self.deep_risk else [],
            "risk": self.risk.to_dict(),
            "summary": self.summary,
            "clauses": [c.model_dump(mode="json") for c in self.clauses],
        }


@dataclass
class PipelineResult:
    """Result of one pipeline run."""
    contract_id: UUID
    stage: PipelineStage
    risk_score: int | None = None
    clause_count: int = 0
    chunk_count: int = 0
    embeddings_inserted: int = 0
    deep_risk_used: bool = False
    step_timings: dict[str, float] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract_id": str(self.contract_id),
            "stage": self.stage.value,
            "risk_score": self.risk_score,
            "clause_count": self.clause_count,
            "chunk_count": self.chunk_count,
            "embeddings_inserted": self.embeddings_inserted,
            "deep_risk_used": self.deep_risk_used,
            "duration_seconds": self.duration_seconds,
        }


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


class AnalysisPipeline:
    """
    Coordinates extraction, chunking, embedding, clause analysis, scoring
    and persistence for a single contract.

    Any failure marks the contract failed and is re-raised so the job
    runner's retry policy decides what happens next. The deep risk pass is
    the exception: its failure falls back to the algorithmic score.
    """

    def __init__(
        self,
        db: PostgresAdapter,
        storage: ObjectStorage,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedding_service: EmbeddingService,
        clause_extractor: ClauseExtractor,
        risk_scorer: RiskScorer,
        summarizer: Summarizer,
        cache: RedisCache | None = None,
        min_word_count: int = 20,
        deep_risk_enabled: bool = True,
    ):
        self.db = db
        self.storage = storage
        self.extractor = extractor
        self.chunker = chunker
        self.embedding_service = embedding_service
        self.clause_extractor = clause_extractor
        self.risk_scorer = risk_scorer
        self.summarizer = summarizer
        self.cache = cache
        self.min_word_count = min_word_count
        self.deep_risk_enabled = deep_risk_enabled

    async def run(
        self,
        request: AnalysisRequest,
        progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """Analyze one contract end to end."""
        result = PipelineResult(
            contract_id=request.contract_id,
            stage=PipelineStage.PROCESSING,
            started_at=datetime.now(timezone.utc),
        )
        log = logger.bind(contract_id=str(request.contract_id), tenant_id=str(request.tenant_id))
        log.info("pipeline_started", file_path=request.file_path)

        async def step(number: int, label: str, stage: PipelineStage) -> None:
            result.stage = stage
            result.step_timings[f"step{number}"] = round(
                (datetime.now(timezone.utc) - result.started_at).total_seconds(), 3
            )
            log.info("pipeline_step", step=f"{number}/{TOTAL_STEPS}", label=label)
            if progress is not None:
                await progress(number, TOTAL_STEPS, label)

        try:
            await step(1, "Initializing analysis", PipelineStage.PROCESSING)
            await self.db.update_contract_status(request.contract_id, ContractStatus.PROCESSING)

            await step(2, "Downloading contract file", PipelineStage.EXTRACTING)
            data = await self.storage.download(request.file_path)

            await step(3, "Extracting text content", PipelineStage.EXTRACTING)
            extraction = await asyncio.to_thread(self.extractor.extract, data, request.file_type)
            if not extraction.text or extraction.word_count < self.min_word_count:
                raise ExtractionError(
                    f"Text extraction yielded too little content ({extraction.word_count} words). "
                    "File may be corrupted or a scanned image without a text layer."
                )

            await step(4, "Chunking document into segments", PipelineStage.CHUNKING)
            chunks = self.chunker.chunk(extraction.text)
            result.chunk_count = len(chunks)

            await step(5, "Generating embeddings and analyzing clauses", PipelineStage.EMBEDDING)
            embeddings, (clauses, dates, detection) = await asyncio.gather(
                self.embedding_service.embed_batch(chunks),
                self.extract_structure(extraction.text, request.contract_type),
            )
            contract_type = detection.type if detection else request.contract_type

            await step(6, "Persisting embeddings and clauses", PipelineStage.PERSISTING)
            result.embeddings_inserted = await self._replace_embeddings(
                request.contract_id, chunks, embeddings
            )
            await self.db.delete_clauses(request.contract_id)
            await self.db.insert_clauses(request.contract_id, clauses)
            if detection is not None:
                await self.db.update_contract_type(
                    request.contract_id, detection.type, detection.counterparty
                )
            result.clause_count = len(clauses)

            await step(7, "Computing risk and generating summary", PipelineStage.SCORING)
            analysis = await self.score_and_summarize(
                extraction.text,
                clauses,
                dates,
                contract_type,
                detection.counterparty if detection else None,
            )

            await step(8, "Finalizing risk score", PipelineStage.SCORING)
            result.risk_score = analysis.final_score
            result.deep_risk_used = analysis.deep_risk is not None

            await step(9, "Saving analysis", PipelineStage.PERSISTING)
            await self.db.update_contract_analysis(
                request.contract_id,
                raw_text=extraction.text,
                risk_score=analysis.final_score,
                summary=analysis.summary,
                effective_date=dates.effective_date,
                expiration_date=dates.expiration_date,
                auto_renewal=dates.auto_renewal,
            )
            if self.cache is not None:
                await self.cache.invalidate_tenant_search(request.tenant_id)

        except Exception as e:
            log.error("pipeline_failed", stage=result.stage.value, error=str(e))
            result.stage = PipelineStage.FAILED
            try:
                await self.db.update_contract_status(
                    request.contract_id, ContractStatus.FAILED, error_message=str(e)[:1000]
                )
            except Exception as update_error:
                log.error("pipeline_failed_status_update_failed", error=str(update_error))
            raise

        result.stage = PipelineStage.READY
        result.completed_at = datetime.now(timezone.utc)
        log.info(
            "pipeline_complete",
            risk_score=result.risk_score,
            clauses=result.clause_count,
            embeddings=result.embeddings_inserted,
            duration_seconds=result.duration_seconds,
            step_timings=result.step_timings,
        )
        return result

    async def extract_structure(
        self,
        text: str,
        contract_type: ContractType,
    ) -> tuple[list[ExtractedClause], ExtractedDates, ContractTypeDetection | None]:
        """Clauses, dates and, for untyped contracts, the detected type."""
        detect = contract_type == ContractType.OTHER
        tasks = [
            self.clause_extractor.extract_clauses(text),
            self.clause_extractor.extract_dates(text),
        ]
        if detect:
            tasks.append(self.clause_extractor.detect_type(text))

        outcomes = await asyncio.gather(*tasks)
        detection = outcomes[2] if detect else None
        return outcomes[0], outcomes[1], detection

    async def score_and_summarize(
        self,
        text: str,
        clauses: list[ExtractedClause],
        dates: ExtractedDates,
        contract_type: ContractType,
        counterparty: str | None = None,
    ) -> DocumentAnalysis:
        """Algorithmic score, deep risk refinement and summary."""
        risk = self.risk_scorer.score(clauses)
        summary_input = SummaryInput(
            contract_text=text,
            contract_type=contract_type.value,
            clauses=clauses,
            counterparty=counterparty,
            effective_date=dates.effective_date,
            expiration_date=dates.expiration_date,
        )

        deep_risk, summary = await asyncio.gather(
            self._deep_risk(clauses),
            self.summarizer.generate_summary(summary_input),
        )

        final_score = risk.overall_score
        if deep_risk is not None:
            final_score = self.risk_scorer.blend(risk.overall_score, deep_risk)
            logger.info(
                "risk_score_blended",
                algo_score=risk.overall_score,
                llm_score=deep_risk.risk_score,
                final_score=final_score,
            )

        return DocumentAnalysis(
            clauses=clauses,
            dates=dates,
            contract_type=contract_type,
            counterparty=counterparty,
            risk=risk,
            deep_risk=deep_risk,
            final_score=final_score,
            summary=summary,
        )

    async def analyze_text(
        self,
        text: str,
        contract_type: ContractType = ContractType.OTHER,
    ) -> DocumentAnalysis:
        """Analyze text without touching storage or the database."""
        clauses, dates, detection = await self.extract_structure(text, contract_type)
        if detection is not None:
            contract_type = detection.type
        return await self.score_and_summarize(
            text,
            clauses,
            dates,
            contract_type,
            detection.counterparty if detection else None,
        )

    async def _deep_risk(self, clauses: list[ExtractedClause]) -> DeepRiskResult | None:
        if not self.deep_risk_enabled or not clauses:
            return None
        try:
            return await self.risk_scorer.analyze_risk_deep(clauses)
        except Exception as e:
            logger.error("deep_risk_failed", error=str(e), fallback="algorithmic")
            return None

    async def _replace_embeddings(
        self,
        contract_id: UUID,
        chunks: list[TextChunk],
        embeddings: list[EmbeddingResult],
    ) -> int:
        by_index = {chunk.index: chunk for chunk in chunks}
        records = [
            EmbeddingRecord(
                contract_id=contract_id,
                chunk_index=e.chunk_index,
                chunk_text=by_index[e.chunk_index].text,
                chunk_hash=e.chunk_hash,
                embedding=e.embedding,
            )
            for e in embeddings
        ]
        await self.db.delete_embeddings(contract_id)
        return await self.db.insert_embeddings(records)

