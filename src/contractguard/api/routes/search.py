"""
Semantic search routes.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from contractguard.api.dependencies import get_container, get_tenant_id
from contractguard.container import ServiceContainer
from contractguard.models.api import SearchRequest, SearchResponse

router = APIRouter()


@router.post("", response_model=SearchResponse)
async def semantic_search(
    request: SearchRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    container: ServiceContainer = Depends(get_container),
) -> SearchResponse:
    """
    Search the tenant's analyzed contracts by meaning.

    Results below the minimum similarity score are dropped; each result
    carries a relevance label.
    """
    return await container.retrieval.search(tenant_id, request)
