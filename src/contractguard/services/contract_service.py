"""
Contract service: analysis triggers and risk breakdowns.
"""

from uuid import UUID

import structlog

from contractguard.config import Settings
from contractguard.errors import ConflictError, NotFoundError
from contractguard.models.contract import Contract, ContractStatus
from contractguard.services.risk_scorer import RiskResult, compute_risk_score
from contractguard.storage.postgres import PostgresAdapter
from contractguard.storage.redis_cache import RedisCache
from contractguard.workers.queue import (
    JobOptions,
    JobQueue,
    analysis_job_id,
    embedding_job_id,
)

logger = structlog.get_logger(__name__)


class ContractService:
    """Operations on a tenant's contracts that go through the job queues."""

    def __init__(
        self,
        db: PostgresAdapter,
        cache: RedisCache,
        analysis_queue: JobQueue,
        embedding_queue: JobQueue,
        settings: Settings,
    ):
        self.db = db
        self.cache = cache
        self.analysis_queue = analysis_queue
        self.embedding_queue = embedding_queue
        self.analysis_options = JobOptions(
            attempts=settings.job_attempts,
            backoff_seconds=settings.analysis_backoff_seconds,
        )
        self.embedding_options = JobOptions(
            attempts=settings.job_attempts,
            backoff_seconds=settings.default_backoff_seconds,
        )

    async def get_contract(self, contract_id: UUID, tenant_id: UUID) -> Contract:
        contract = await self.db.get_contract(contract_id, tenant_id)
        if contract is None:
            raise NotFoundError("Contract", str(contract_id))
        return contract

    async def request_analysis(self, contract_id: UUID, tenant_id: UUID) -> str:
        """
        Queue a (re-)analysis run.

        Raises:
            NotFoundError: contract does not exist for the tenant
            ConflictError: a run is already in progress

        Returns:
            The analysis job ID
        """
        contract = await self.get_contract(contract_id, tenant_id)
        if contract.status == ContractStatus.PROCESSING:
            raise ConflictError("Contract analysis is already in progress")

        if not await self.db.claim_for_processing(contract_id):
            raise ConflictError("Contract analysis is already in progress")

        try:
            job_id = await self.analysis_queue.enqueue(
                analysis_job_id(contract_id),
                {
                    "contract_id": str(contract_id),
                    "tenant_id": str(tenant_id),
                    "file_path": contract.file_path,
                    "file_type": contract.file_type.value,
                    "contract_type": contract.type.value,
                },
                self.analysis_options,
            )
        except Exception as e:
            # Release the claim; no queued job exists to finish the run.
            logger.error(
                "contract_analysis_enqueue_failed",
                contract_id=str(contract_id),
                restored_status=contract.status.value,
                error=str(e),
            )
            await self.db.update_contract_status(
                contract_id, contract.status, contract.error_message
            )
            raise
        await self.cache.invalidate_tenant_search(tenant_id)

        logger.info(
            "contract_analysis_requested",
            contract_id=str(contract_id),
            tenant_id=str(tenant_id),
            job_id=job_id,
        )
        return job_id

    async def request_embedding(
        self,
        contract_id: UUID,
        tenant_id: UUID,
        chunk_indexes: list[int] | None = None,
    ) -> str:
        """Queue a full or incremental embedding refresh."""
        await self.get_contract(contract_id, tenant_id)

        job_id = await self.embedding_queue.enqueue(
            embedding_job_id(contract_id),
            {
                "contract_id": str(contract_id),
                "tenant_id": str(tenant_id),
                "chunk_indexes": chunk_indexes or [],
            },
            self.embedding_options,
        )
        logger.info(
            "contract_embedding_requested",
            contract_id=str(contract_id),
            job_id=job_id,
            incremental=bool(chunk_indexes),
        )
        return job_id

    async def get_risk_breakdown(self, contract_id: UUID, tenant_id: UUID) -> RiskResult:
        """Algorithmic risk breakdown recomputed from stored clauses."""
        await self.get_contract(contract_id, tenant_id)
        clauses = await self.db.list_clauses(contract_id)
        return compute_risk_score(clauses)
