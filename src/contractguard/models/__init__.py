"""
Pydantic models for ContractGuard.

This module contains all data models used throughout the application:
- Contract models for document representation
- Clause models and validated completion-service responses
- Chunk, embedding and search-hit models
- API models for request/response schemas
"""

from contractguard.models.contract import (
    Contract,
    ContractStatus,
    ContractType,
    FileType,
)
from contractguard.models.clause import (
    Clause,
    ClauseType,
    ContractTypeDetection,
    DeepRiskResult,
    ExtractedClause,
    ExtractedDates,
    RiskLevel,
)
from contractguard.models.embedding import (
    EmbeddingRecord,
    EmbeddingResult,
    RelevanceLabel,
    SimilarityHit,
    TextChunk,
)
from contractguard.models.api import (
    SearchRequest,
    SearchResponse,
    SearchResult,
)

__all__ = [
    # Contract models
    "Contract",
    "ContractStatus",
    "ContractType",
    "FileType",
    # Clause models
    "Clause",
    "ClauseType",
    "ContractTypeDetection",
    "DeepRiskResult",
    "ExtractedClause",
    "ExtractedDates",
    "RiskLevel",
    # Embedding models
    "EmbeddingRecord",
    "EmbeddingResult",
    "RelevanceLabel",
    "SimilarityHit",
    "TextChunk",
    # API models
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
]
