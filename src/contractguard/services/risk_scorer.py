"""
Contract risk scoring.

Combines a deterministic weighted score computed from extracted clauses
with an optional holistic LLM assessment (70/30 blend).
"""

import math
from dataclasses import dataclass, field

import structlog

from contractguard.models.clause import (
    ClauseType,
    DeepRiskResult,
    ExtractedClause,
    RiskLevel,
)
from contractguard.services.llm_service import CompletionProvider, parse_json_response
from contractguard.services.prompts import build_risk_prompt

logger = structlog.get_logger(__name__)


# Higher weight = clause has more business impact.
CLAUSE_WEIGHTS: dict[ClauseType, int] = {
    ClauseType.LIABILITY: 25,
    ClauseType.INDEMNIFICATION: 20,
    ClauseType.DATA_PROCESSING: 15,
    ClauseType.AUTO_RENEWAL: 10,
    ClauseType.TERMINATION: 10,
    ClauseType.PAYMENT: 8,
    ClauseType.IP_OWNERSHIP: 5,
    ClauseType.CONFIDENTIALITY: 3,
    ClauseType.NON_COMPETE: 2,
    ClauseType.NON_SOLICITATION: 2,
    ClauseType.WARRANTY: 2,
    ClauseType.DISPUTE_RESOLUTION: 2,
    ClauseType.GOVERNING_LAW: 1,
    ClauseType.FORCE_MAJEURE: 1,
    ClauseType.OTHER: 1,
}
DEFAULT_WEIGHT = 1

RISK_LEVEL_SCORES: dict[RiskLevel, int] = {
    RiskLevel.CRITICAL: 100,
    RiskLevel.HIGH: 75,
    RiskLevel.MEDIUM: 40,
    RiskLevel.LOW: 10,
}

# Absent clause types at or above this weight add a penalty.
HIGH_WEIGHT_THRESHOLD = 10
MISSING_PENALTY_FACTOR = 0.5
MISSING_PENALTY_SCORE = 40  # treated as a medium-risk clause


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_to_label(score: int) -> str:
    """Map a 0-100 score to its risk label."""
    if score >= 75:
        return "critical"
    if score >= 50:
        return "high"
    if score >= 25:
        return "medium"
    return "low"


def blend_scores(algo_score: int, llm_score: float, algo_weight: float = 0.7) -> int:
    """Blend algorithmic and LLM scores, clamped to 0-100."""
    blended = round_half_up(algo_score * algo_weight + llm_score * (1 - algo_weight))
    return min(100, max(0, blended))


@dataclass
class RiskBreakdownItem:
    """Weighted contribution of one clause type."""
    clause_type: str
    weight: float
    risk_level: str
    risk_score: int
    weighted_score: float
    explanation: str

    def to_dict(self) -> dict:
        return {
            "clause_type": self.clause_type,
            "weight": self.weight,
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "weighted_score": round(self.weighted_score, 2),
            "explanation": self.explanation,
        }


@dataclass
class RiskResult:
    """Algorithmic risk score for a contract."""
    overall_score: int
    label: str
    breakdown: list[RiskBreakdownItem] = field(default_factory=list)
    missing_high_weight_clause_types: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overall_score": self.overall_score,
            "label": self.label,
            "breakdown": [item.to_dict() for item in self.breakdown],
            "missing_high_weight_clause_types": self.missing_high_weight_clause_types,
        }


def compute_risk_score(clauses: list[ExtractedClause]) -> RiskResult:
    """
    Compute an overall 0-100 risk score from extracted clauses.

    1. Each clause type counts once with its highest risk level:
       weighted = weight * level_score / 100.
    2. Every high-weight clause type that is absent adds half its weight
       to the denominator and a medium-risk contribution to the sum.
    3. score = sum / total_weight * 100, rounded and clamped.
    """
    if not clauses:
        logger.warning("risk_score_no_clauses")
        return RiskResult(overall_score=0, label="low")

    by_type: dict[ClauseType, RiskBreakdownItem] = {}
    for clause in clauses:
        weight = CLAUSE_WEIGHTS.get(clause.clause_type, DEFAULT_WEIGHT)
        risk_score = RISK_LEVEL_SCORES.get(clause.risk_level, 10)
        current = by_type.get(clause.clause_type)
        if current is not None and risk_score <= current.risk_score:
            continue
        by_type[clause.clause_type] = RiskBreakdownItem(
            clause_type=clause.clause_type.value,
            weight=weight,
            risk_level=clause.risk_level.value,
            risk_score=risk_score,
            weighted_score=weight * risk_score / 100,
            explanation=clause.risk_explanation,
        )

    total_weight = float(sum(item.weight for item in by_type.values()))
    weighted_sum = sum(item.weighted_score for item in by_type.values())

    missing: list[str] = []
    for clause_type, weight in CLAUSE_WEIGHTS.items():
        if weight >= HIGH_WEIGHT_THRESHOLD and clause_type not in by_type:
            missing.append(clause_type.value)
            penalty_weight = weight * MISSING_PENALTY_FACTOR
            total_weight += penalty_weight
            weighted_sum += penalty_weight * MISSING_PENALTY_SCORE / 100

    raw_score = (weighted_sum / total_weight) * 100 if total_weight > 0 else 0.0
    overall = min(100, max(0, round_half_up(raw_score)))
    breakdown = sorted(by_type.values(), key=lambda item: item.weighted_score, reverse=True)

    result = RiskResult(
        overall_score=overall,
        label=score_to_label(overall),
        breakdown=breakdown,
        missing_high_weight_clause_types=missing,
    )
    logger.info(
        "risk_score_computed",
        score=result.overall_score,
        label=result.label,
        clauses=len(clauses),
        missing=missing,
    )
    return result


class RiskScorer:
    """Algorithmic scoring plus the LLM deep-analysis refinement."""

    def __init__(self, provider: CompletionProvider, algo_weight: float = 0.7):
        self.provider = provider
        self.algo_weight = algo_weight

    def score(self, clauses: list[ExtractedClause]) -> RiskResult:
        return compute_risk_score(clauses)

    async def analyze_risk_deep(self, clauses: list[ExtractedClause]) -> DeepRiskResult:
        """Holistic LLM assessment. Raises on any provider or schema failure."""
        raw = await self.provider.call(build_risk_prompt(clauses))
        result = parse_json_response(raw, DeepRiskResult)
        logger.info(
            "deep_risk_analyzed",
            llm_score=result.risk_score,
            top_risks=result.top_risks,
        )
        return result

    def blend(self, algo_score: int, deep: DeepRiskResult) -> int:
        return blend_scores(algo_score, deep.risk_score, self.algo_weight)
