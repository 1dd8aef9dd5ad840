"""
API request and response models.
"""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from contractguard.models.contract import ContractType
from contractguard.models.embedding import RelevanceLabel


class CamelModel(BaseModel):
    """Model using camelCase aliases that also accepts field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Search Models
# =============================================================================


class SearchRequest(CamelModel):
    """Request model for semantic search."""

    query: str = Field(..., description="Natural language query")
    limit: int | None = Field(default=None, ge=1, description="Maximum results")
    min_score: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Minimum cosine similarity"
    )
    contract_ids: list[UUID] | None = Field(
        default=None, description="Restrict search to these contracts"
    )
    contract_types: list[ContractType] | None = Field(
        default=None, description="Restrict search to these contract types"
    )


class SearchResult(CamelModel):
    """One ranked chunk in a search response."""

    embedding_id: UUID
    document_id: UUID
    chunk_text: str
    chunk_index: int
    similarity_score: float
    relevance_label: RelevanceLabel
    contract_name: str | None = None
    contract_type: str | None = None
    risk_score: int | None = None


class SearchResponse(CamelModel):
    """Response model for semantic search."""

    query: str
    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    cached: bool = False
    embedding_latency: int = Field(default=0, description="Milliseconds")
    search_latency: int = Field(default=0, description="Milliseconds")


# =============================================================================
# Analysis Models
# =============================================================================


class AnalysisJobResponse(BaseModel):
    """Response for an accepted analysis or embedding request."""

    contract_id: UUID
    job_id: str
    status: str
    message: str


class EmbeddingJobRequest(BaseModel):
    """Request model for (re-)embedding a contract."""

    chunk_indexes: list[int] | None = Field(
        default=None, description="Only embed these chunk indexes (incremental)"
    )


class RiskBreakdownResponse(BaseModel):
    """Algorithmic risk breakdown for a contract."""

    contract_id: UUID
    overall_score: int
    label: str
    breakdown: list[dict[str, Any]]
    missing_high_weight_clause_types: list[str]


# =============================================================================
# Health Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    services: dict[str, Any]
