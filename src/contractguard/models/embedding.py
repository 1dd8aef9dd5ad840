"""
Chunk, embedding and search-hit models.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class TextChunk(BaseModel):
    """A bounded, overlapping segment of document text."""

    index: int = Field(..., ge=0, description="Position in document (0-based)")
    text: str
    token_count: int
    content_hash: str = Field(..., description="SHA-256 of the chunk text")


class EmbeddingResult(BaseModel):
    """Vector produced for one chunk."""

    chunk_index: int
    chunk_hash: str
    embedding: list[float]
    token_count: int


class EmbeddingRecord(BaseModel):
    """Row to persist in contract_embeddings."""

    contract_id: UUID
    chunk_index: int
    chunk_text: str
    chunk_hash: str
    embedding: list[float]
    created_at: datetime | None = None


class RelevanceLabel(str, Enum):
    """Coarse similarity bucket for display."""

    VERY_HIGH = "very_high"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_score(cls, score: float) -> "RelevanceLabel":
        """Bucket a cosine similarity score."""
        if score >= 0.85:
            return cls.VERY_HIGH
        if score >= 0.70:
            return cls.HIGH
        if score >= 0.55:
            return cls.MEDIUM
        return cls.LOW


class SimilarityHit(BaseModel):
    """A raw nearest-neighbor row enriched with contract metadata."""

    embedding_id: UUID
    contract_id: UUID
    chunk_text: str
    chunk_index: int
    similarity_score: float
    contract_name: str | None = None
    contract_type: str | None = None
    risk_score: int | None = None
