"""Shared pytest fixtures and fakes for the ContractGuard test suite."""

from typing import Callable
from uuid import uuid4

import pytest
from unittest.mock import AsyncMock

from contractguard.config import Settings, get_settings
from contractguard.models.clause import ClauseType, ExtractedClause, RiskLevel
from contractguard.storage.redis_cache import RedisCache


# ---------------------------------------------------------------------------
# Settings cache clearing (autouse)
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def clear_settings_cache():
    """get_settings is lru_cached; reset it around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        jina_api_key="test-jina-key",
        groq_api_key="test-groq-key",
        storage_dir=tmp_path / "storage",
    )


# ---------------------------------------------------------------------------
# Completion provider fake
# ---------------------------------------------------------------------------

class FakeProvider:
    """
    Completion provider double.

    `responder` receives the prompt and returns the raw completion text,
    or raises to simulate a provider failure.
    """

    def __init__(self, responder: Callable[[str], str] | str, name: str = "fake"):
        self._responder = responder
        self.name = name
        self.prompts: list[str] = []

    async def call(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if isinstance(self._responder, str):
            return self._responder
        return self._responder(prompt)


def failing(message: str = "provider down") -> Callable[[str], str]:
    def respond(prompt: str) -> str:
        raise RuntimeError(message)
    return respond


@pytest.fixture
def fake_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

def make_clause(
    clause_type: ClauseType = ClauseType.CONFIDENTIALITY,
    risk_level: RiskLevel = RiskLevel.MEDIUM,
    text: str = "Each party shall keep the other party's Confidential Information secret.",
    explanation: str = "Standard mutual confidentiality obligation.",
) -> ExtractedClause:
    return ExtractedClause(
        clause_type=clause_type,
        text=text,
        risk_level=risk_level,
        risk_explanation=explanation,
    )


@pytest.fixture
def sample_clauses():
    """Four clauses across liability, indemnification and confidentiality."""
    return [
        make_clause(
            ClauseType.LIABILITY,
            RiskLevel.CRITICAL,
            "Provider's liability under this Agreement shall be unlimited.",
            "Unlimited liability exposure.",
        ),
        make_clause(
            ClauseType.INDEMNIFICATION,
            RiskLevel.HIGH,
            "Customer shall indemnify Provider against all third-party claims.",
            "One-sided indemnity.",
        ),
        make_clause(),
        make_clause(
            ClauseType.GOVERNING_LAW,
            RiskLevel.LOW,
            "This Agreement is governed by the laws of the State of Delaware.",
            "Common neutral jurisdiction.",
        ),
    ]


@pytest.fixture
def nda_text():
    """Short mutual NDA, comfortably above the minimum word count."""
    return (
        "MUTUAL NON-DISCLOSURE AGREEMENT\n\n"
        "This Mutual Non-Disclosure Agreement is entered into as of January 1, 2024 "
        "between Acme Corp and Beta LLC.\n\n"
        "1. Confidentiality. Each party shall keep the other party's Confidential "
        "Information secret and use it only to evaluate a potential business relationship.\n\n"
        "2. Term. This Agreement expires on December 31, 2026 and renews automatically "
        "for successive one-year terms unless either party gives thirty days notice.\n\n"
        "3. Governing Law. This Agreement is governed by the laws of the State of Delaware."
    )


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def contract_id():
    return uuid4()


@pytest.fixture
def clause_factory():
    """Factory for ExtractedClause instances."""
    return make_clause


@pytest.fixture
def failing_responder():
    """Responder that raises, simulating a provider outage."""
    return failing


@pytest.fixture
def mock_cache():
    """RedisCache double whose get_or_set always misses and runs the factory."""
    async def get_or_set(key, factory, ttl=None):
        return await factory(), False

    cache = AsyncMock(spec=RedisCache)
    cache.get_or_set.side_effect = get_or_set
    cache.invalidate_tenant_search.return_value = 0
    return cache
