"""
Contract analysis routes.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status

from contractguard.api.dependencies import get_container, get_tenant_id
from contractguard.container import ServiceContainer
from contractguard.models.api import (
    AnalysisJobResponse,
    EmbeddingJobRequest,
    RiskBreakdownResponse,
)

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/{contract_id}/analyze",
    response_model=AnalysisJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def analyze_contract(
    contract_id: UUID,
    tenant_id: UUID = Depends(get_tenant_id),
    container: ServiceContainer = Depends(get_container),
) -> AnalysisJobResponse:
    """
    Queue (re-)analysis of an existing contract.

    Returns 409 if an analysis run is already in progress.
    """
    job_id = await container.contracts.request_analysis(contract_id, tenant_id)
    return AnalysisJobResponse(
        contract_id=contract_id,
        job_id=job_id,
        status="processing",
        message="Analysis queued successfully.",
    )


@router.post(
    "/{contract_id}/embeddings",
    response_model=AnalysisJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def refresh_embeddings(
    contract_id: UUID,
    request: EmbeddingJobRequest | None = None,
    tenant_id: UUID = Depends(get_tenant_id),
    container: ServiceContainer = Depends(get_container),
) -> AnalysisJobResponse:
    """Queue a full or incremental embedding refresh."""
    chunk_indexes = request.chunk_indexes if request else None
    job_id = await container.contracts.request_embedding(contract_id, tenant_id, chunk_indexes)
    return AnalysisJobResponse(
        contract_id=contract_id,
        job_id=job_id,
        status="queued",
        message="Embedding refresh queued.",
    )


@router.get("/{contract_id}/risk", response_model=RiskBreakdownResponse)
async def get_risk_breakdown(
    contract_id: UUID,
    tenant_id: UUID = Depends(get_tenant_id),
    container: ServiceContainer = Depends(get_container),
) -> RiskBreakdownResponse:
    """Weighted risk contribution of each clause type."""
    risk = await container.contracts.get_risk_breakdown(contract_id, tenant_id)
    return RiskBreakdownResponse(contract_id=contract_id, **risk.to_dict())
