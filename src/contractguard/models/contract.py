"""
Contract models for representing uploaded legal documents.
"""

from datetime import date, datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class ContractStatus(str, Enum):
    """Lifecycle status for a contract."""

    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    ARCHIVED = "archived"


class ContractType(str, Enum):
    """Declared or detected contract type."""

    NDA = "NDA"
    MSA = "MSA"
    SAAS = "SaaS"
    VENDOR = "Vendor"
    EMPLOYMENT = "Employment"
    OTHER = "Other"


class FileType(str, Enum):
    """Supported source file formats."""

    PDF = "pdf"
    DOCX = "docx"


class Contract(BaseModel):
    """
    Represents a legal contract document owned by a tenant.

    Mutated by the analysis pipeline only at stage boundaries.
    """

    id: UUID = Field(default_factory=uuid4)
    tenant_id: UUID = Field(..., description="Owning organization")
    name: str = Field(..., description="Display name")
    type: ContractType = Field(default=ContractType.OTHER)
    counterparty: str | None = None
    status: ContractStatus = Field(default=ContractStatus.QUEUED)

    # Source file
    file_path: str = Field(..., description="Object storage path")
    file_type: FileType = Field(default=FileType.PDF)
    file_size: int = 0

    # Extracted / computed data
    raw_text: str | None = Field(default=None, description="Full extracted text")
    effective_date: date | None = None
    expiration_date: date | None = None
    auto_renewal: bool = False
    risk_score: int | None = Field(default=None, ge=0, le=100)
    summary: str | None = None
    error_message: str | None = None

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_analyzed_at: datetime | None = None

    class Config:
        from_attributes = True

    @property
    def is_ready(self) -> bool:
        """Check if the contract has been fully analyzed."""
        return self.status == ContractStatus.READY

    @property
    def is_processing(self) -> bool:
        """Check if an analysis run is in flight."""
        return self.status == ContractStatus.PROCESSING
