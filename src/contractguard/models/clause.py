"""
Clause models and the validated shapes of completion-service responses.

Every JSON payload returned by a completion provider is parsed into one of
these models at the boundary; anything that does not validate is rejected.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import AliasChoices, BaseModel, Field, field_validator

from contractguard.models.contract import ContractType


class ClauseType(str, Enum):
    """The fixed set of clause categories."""

    LIABILITY = "liability"
    INDEMNIFICATION = "indemnification"
    DATA_PROCESSING = "data_processing"
    AUTO_RENEWAL = "auto_renewal"
    TERMINATION = "termination"
    PAYMENT = "payment"
    CONFIDENTIALITY = "confidentiality"
    IP_OWNERSHIP = "ip_ownership"
    WARRANTY = "warranty"
    FORCE_MAJEURE = "force_majeure"
    GOVERNING_LAW = "governing_law"
    DISPUTE_RESOLUTION = "dispute_resolution"
    NON_COMPETE = "non_compete"
    NON_SOLICITATION = "non_solicitation"
    OTHER = "other"


class RiskLevel(str, Enum):
    """Per-clause risk assessment."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def severity(self) -> int:
        """Ordering rank, higher is more severe."""
        return RISK_ORDER[self]


RISK_ORDER: dict[RiskLevel, int] = {
    RiskLevel.CRITICAL: 4,
    RiskLevel.HIGH: 3,
    RiskLevel.MEDIUM: 2,
    RiskLevel.LOW: 1,
}


class ExtractedClause(BaseModel):
    """A typed, risk-annotated excerpt returned by the clause extractor."""

    clause_type: ClauseType
    text: str = Field(..., min_length=1, max_length=5000)
    risk_level: RiskLevel
    risk_explanation: str = Field(..., min_length=1, max_length=500)
    page_number: int | None = None


class Clause(ExtractedClause):
    """A clause persisted against a contract."""

    id: UUID = Field(default_factory=uuid4)
    contract_id: UUID
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        from_attributes = True


class ExtractedDates(BaseModel):
    """Key dates and renewal terms."""

    effective_date: date | None = None
    expiration_date: date | None = None
    auto_renewal: bool = False
    notice_period_days: int | None = None

    @field_validator("effective_date", "expiration_date", mode="before")
    @classmethod
    def parse_iso_date(cls, v: Any) -> Any:
        """Drop dates that are not valid ISO 8601 calendar dates."""
        if v is None or isinstance(v, date):
            return v
        if isinstance(v, str):
            try:
                return date.fromisoformat(v.strip()[:10])
            except ValueError:
                return None
        return None

    @classmethod
    def empty(cls) -> "ExtractedDates":
        """Result used when date extraction fails."""
        return cls()


class ContractTypeDetection(BaseModel):
    """Detected contract type and counterparty."""

    type: ContractType
    confidence: float = Field(..., ge=0.0, le=1.0)
    counterparty: str | None = None


class DeepRiskResult(BaseModel):
    """Holistic risk assessment returned by the completion service."""

    risk_score: float = Field(..., ge=0, le=100)
    risk_summary: str = Field(
        default="",
        validation_alias=AliasChoices("risk_summary", "reasoning"),
    )
    top_risks: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("top_risks", "top_concerns"),
    )
