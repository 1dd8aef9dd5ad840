"""
Clause, date and contract-type extraction via the completion service.

Large documents are split into overlapping character windows that are
processed concurrently; a failing window contributes no clauses.
"""

import asyncio

import structlog

from contractguard.models.clause import (
    ContractTypeDetection,
    ExtractedClause,
    ExtractedDates,
)
from contractguard.models.contract import ContractType
from contractguard.services.llm_service import CompletionProvider, parse_json_response
from contractguard.services.prompts import (
    build_clause_extraction_prompt,
    build_contract_type_prompt,
    build_date_extraction_prompt,
)

logger = structlog.get_logger(__name__)

DEDUP_PREFIX_CHARS = 100


def split_into_windows(text: str, max_chars: int, overlap: int) -> list[str]:
    """Split text into windows of at most max_chars sharing `overlap` chars."""
    if overlap >= max_chars:
        raise ValueError("Window overlap must be smaller than the window size")
    if len(text) <= max_chars:
        return [text]

    windows = []
    start = 0
    while start < len(text):
        end = min(start + max_chars, len(text))
        windows.append(text[start:end])
        if end == len(text):
            break
        start = end - overlap
    return windows


def deduplicate_clauses(clauses: list[ExtractedClause]) -> list[ExtractedClause]:
    """
    Collapse near-identical clauses within each clause type.

    Within a type, clauses are ordered most severe first and a clause is
    dropped when its leading text repeats one already kept, so the kept
    copy is always the most severe. Distinct clauses of one type survive.
    """
    by_type: dict[str, list[ExtractedClause]] = {}
    for clause in clauses:
        by_type.setdefault(clause.clause_type.value, []).append(clause)

    result: list[ExtractedClause] = []
    for type_clauses in by_type.values():
        ordered = sorted(type_clauses, key=lambda c: c.risk_level.severity, reverse=True)
        seen: set[str] = set()
        for clause in ordered:
            key = clause.text[:DEDUP_PREFIX_CHARS].strip()
            if key in seen:
                continue
            seen.add(key)
            result.append(clause)
    return result


class ClauseExtractor:
    """Extracts typed, risk-annotated clauses and contract metadata."""

    def __init__(
        self,
        provider: CompletionProvider,
        window_chars: int = 12_000,
        window_overlap: int = 500,
    ):
        self.provider = provider
        self.window_chars = window_chars
        self.window_overlap = window_overlap

    # =========================================================================
    # Clauses
    # =========================================================================

    async def extract_clauses(self, text: str) -> list[ExtractedClause]:
        """Extract and deduplicate clauses across all windows."""
        if not text.strip():
            return []

        windows = split_into_windows(text, self.window_chars, self.window_overlap)
        logger.info(
            "clause_extraction_started",
            text_length=len(text),
            windows=len(windows),
        )

        window_results = await asyncio.gather(
            *(self._extract_window(window, i) for i, window in enumerate(windows, 1))
        )
        all_clauses = [clause for clauses in window_results for clause in clauses]
        deduped = deduplicate_clauses(all_clauses)

        logger.info(
            "clause_extraction_complete",
            total_clauses=len(all_clauses),
            deduped_clauses=len(deduped),
        )
        return deduped

    async def _extract_window(self, window: str, position: int) -> list[ExtractedClause]:
        try:
            raw = await self.provider.call(build_clause_extraction_prompt(window))
            clauses = parse_json_response(raw, list[ExtractedClause])
        except Exception as e:
            logger.error("clause_window_failed", window=position, error=str(e))
            return []
        logger.debug("clause_window_processed", window=position, clauses=len(clauses))
        return clauses

    # =========================================================================
    # Dates and Type
    # =========================================================================

    async def extract_dates(self, text: str) -> ExtractedDates:
        """Extract key dates; falls back to nulls on any failure."""
        try:
            raw = await self.provider.call(build_date_extraction_prompt(text))
            return parse_json_response(raw, ExtractedDates)
        except Exception as e:
            logger.warning("date_extraction_failed", error=str(e))
            return ExtractedDates.empty()

    async def detect_type(self, text: str) -> ContractTypeDetection:
        """Detect contract type and counterparty; falls back to Other."""
        try:
            raw = await self.provider.call(build_contract_type_prompt(text))
            return parse_json_response(raw, ContractTypeDetection)
        except Exception as e:
            logger.warning("contract_type_detection_failed", error=str(e))
            return ContractTypeDetection(
                type=ContractType.OTHER, confidence=0.0, counterparty=None
            )
