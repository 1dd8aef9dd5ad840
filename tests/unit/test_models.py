"""Tests for contractguard models and the error hierarchy."""

from datetime import date
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from contractguard.errors import (
    AnalysisFailedError,
    AppError,
    ConflictError,
    ExtractionError,
    NotFoundError,
    ProviderError,
    ServiceUnavailableError,
    ValidationError,
)
from contractguard.models.api import SearchRequest, SearchResult
from contractguard.models.clause import (
    DeepRiskResult,
    ExtractedClause,
    ExtractedDates,
    RiskLevel,
)
from contractguard.models.contract import Contract, ContractStatus, ContractType
from contractguard.models.embedding import RelevanceLabel


class TestContract:

    def test_defaults(self, tenant_id):
        contract = Contract(tenant_id=tenant_id, name="NDA", file_path="t/nda.pdf")
        assert contract.status == ContractStatus.QUEUED
        assert contract.type == ContractType.OTHER
        assert contract.risk_score is None
        assert not contract.is_ready
        assert not contract.is_processing

    def test_risk_score_bounds(self, tenant_id):
        with pytest.raises(PydanticValidationError):
            Contract(tenant_id=tenant_id, name="x", file_path="p", risk_score=101)

    def test_contract_type_values(self):
        assert ContractType("SaaS") == ContractType.SAAS
        assert [t.value for t in ContractType] == [
            "NDA", "MSA", "SaaS", "Vendor", "Employment", "Other",
        ]


class TestClauseModels:

    def test_severity_order(self):
        assert (
            RiskLevel.CRITICAL.severity
            > RiskLevel.HIGH.severity
            > RiskLevel.MEDIUM.severity
            > RiskLevel.LOW.severity
        )

    def test_clause_text_required(self):
        with pytest.raises(PydanticValidationError):
            ExtractedClause(
                clause_type="liability", text="", risk_level="low", risk_explanation="x"
            )

    def test_clause_text_max_length(self):
        with pytest.raises(PydanticValidationError):
            ExtractedClause(
                clause_type="liability", text="x" * 5001, risk_level="low", risk_explanation="x"
            )

    def test_dates_accept_iso_prefix(self):
        dates = ExtractedDates(effective_date="2024-03-15T00:00:00Z", expiration_date="n/a")
        assert dates.effective_date == date(2024, 3, 15)
        assert dates.expiration_date is None

    def test_deep_risk_aliases(self):
        result = DeepRiskResult.model_validate(
            {"risk_score": 42, "reasoning": "Moderate.", "top_concerns": ["Renewal"]}
        )
        assert result.risk_summary == "Moderate."
        assert result.top_risks == ["Renewal"]


class TestRelevanceLabel:

    @pytest.mark.parametrize("score,label", [
        (0.95, RelevanceLabel.VERY_HIGH),
        (0.85, RelevanceLabel.VERY_HIGH),
        (0.84, RelevanceLabel.HIGH),
        (0.70, RelevanceLabel.HIGH),
        (0.69, RelevanceLabel.MEDIUM),
        (0.55, RelevanceLabel.MEDIUM),
        (0.54, RelevanceLabel.LOW),
        (0.0, RelevanceLabel.LOW),
    ])
    def test_buckets(self, score, label):
        assert RelevanceLabel.from_score(score) == label


class TestApiModels:

    def test_search_request_accepts_both_key_styles(self):
        ids = [str(uuid4())]
        camel = SearchRequest.model_validate({"query": "q", "minScore": 0.5, "contractIds": ids})
        snake = SearchRequest.model_validate({"query": "q", "min_score": 0.5, "contract_ids": ids})
        assert camel.min_score == snake.min_score == 0.5
        assert camel.contract_ids == snake.contract_ids

    def test_search_request_bounds(self):
        with pytest.raises(PydanticValidationError):
            SearchRequest(query="q", limit=0)
        with pytest.raises(PydanticValidationError):
            SearchRequest(query="q", min_score=-0.1)

    def test_search_result_serializes_camel_case(self):
        result = SearchResult(
            embedding_id=uuid4(),
            document_id=uuid4(),
            chunk_text="text",
            chunk_index=0,
            similarity_score=0.9,
            relevance_label=RelevanceLabel.VERY_HIGH,
        )
        data = result.model_dump(by_alias=True, mode="json")
        assert set(data) >= {"embeddingId", "documentId", "similarityScore", "relevanceLabel"}


class TestErrors:

    @pytest.mark.parametrize("error,status", [
        (ValidationError("bad"), 400),
        (NotFoundError("Contract", "abc"), 404),
        (ConflictError("busy"), 409),
        (AnalysisFailedError(), 422),
        (ExtractionError("empty"), 422),
        (ProviderError("down", provider="groq"), 502),
        (ServiceUnavailableError("embedding"), 503),
    ])
    def test_status_codes(self, error, status):
        assert isinstance(error, AppError)
        assert error.status_code == status
        assert error.to_response()["error"]["status"] == status

    def test_problem_details_body(self):
        body = NotFoundError("Contract", "abc").to_response(instance="/api/v1/contracts/abc/risk")
        assert body == {"error": {
            "type": "https://contractguard.app/errors/not-found",
            "title": "Not Found",
            "status": 404,
            "detail": "Contract with id 'abc' not found",
            "instance": "/api/v1/contracts/abc/risk",
        }}

    def test_instance_omitted(self):
        assert "instance" not in ConflictError("busy").to_response()["error"]

    def test_service_unavailable_default_message(self):
        error = ServiceUnavailableError("redis")
        assert error.message == "Service dependency 'redis' is currently unavailable"
        assert error.dependency == "redis"

    def test_original_error_kept(self):
        cause = TimeoutError("slow")
        error = ProviderError("failed", provider="jina", model="m", original_error=cause)
        assert error.original_error is cause
        assert error.provider == "jina"
