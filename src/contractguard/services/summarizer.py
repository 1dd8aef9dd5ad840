"""
Executive summary generation.

Tries each completion provider in order and falls back to a summary
assembled from structured fields, so summarization never blocks a run.
"""

from dataclasses import dataclass, field
from datetime import date

import structlog

from contractguard.models.clause import ExtractedClause, RiskLevel
from contractguard.services.llm_service import CompletionProvider
from contractguard.services.prompts import build_summary_prompt

logger = structlog.get_logger(__name__)


@dataclass
class SummaryInput:
    """Contract metadata and clauses to summarize."""
    contract_text: str
    contract_type: str
    clauses: list[ExtractedClause] = field(default_factory=list)
    counterparty: str | None = None
    effective_date: date | None = None
    expiration_date: date | None = None


def build_fallback_summary(data: SummaryInput) -> str:
    """Template summary built purely from structured fields."""
    critical = sum(1 for c in data.clauses if c.risk_level == RiskLevel.CRITICAL)
    high = sum(1 for c in data.clauses if c.risk_level == RiskLevel.HIGH)

    with_party = f" with {data.counterparty}" if data.counterparty else ""
    parts = [f"This {data.contract_type} agreement{with_party} has been analyzed."]
    if data.expiration_date:
        parts.append(f"The contract expires on {data.expiration_date.isoformat()}.")
    if data.clauses:
        parts.append(
            f"{len(data.clauses)} clauses were identified, including {critical} critical "
            f"and {high} high-risk clauses requiring attention."
        )
    parts.append(
        "Please review the full analysis and consult legal counsel for important decisions."
    )
    return " ".join(parts)


class Summarizer:
    """Plain-language summaries with provider fallback."""

    def __init__(self, providers: list[CompletionProvider]):
        self.providers = providers

    async def generate_summary(self, data: SummaryInput) -> str:
        """Summary from the first provider that succeeds, else the template."""
        logger.info(
            "summary_started",
            contract_type=data.contract_type,
            clauses=len(data.clauses),
        )
        prompt = build_summary_prompt(
            contract_text=data.contract_text,
            contract_type=data.contract_type,
            clauses=data.clauses,
            counterparty=data.counterparty,
            effective_date=data.effective_date.isoformat() if data.effective_date else None,
            expiration_date=data.expiration_date.isoformat() if data.expiration_date else None,
        )

        for provider in self.providers:
            try:
                summary = (await provider.call(prompt)).strip()
            except Exception as e:
                logger.warning("summary_provider_failed", provider=provider.name, error=str(e))
                continue
            if summary:
                logger.info("summary_generated", provider=provider.name, length=len(summary))
                return summary

        logger.error("summary_providers_exhausted", fallback="template")
        return build_fallback_summary(data)
