"""Tests for contractguard/services/summarizer.py."""

from datetime import date

import pytest

from contractguard.services.summarizer import SummaryInput, Summarizer, build_fallback_summary


@pytest.fixture
def summary_input(sample_clauses):
    return SummaryInput(
        contract_text="This Master Services Agreement is made between Acme and Beta.",
        contract_type="MSA",
        clauses=sample_clauses,
        counterparty="Beta LLC",
        effective_date=date(2024, 1, 1),
        expiration_date=date(2026, 12, 31),
    )


class TestFallbackSummary:

    def test_full_fields(self, summary_input):
        summary = build_fallback_summary(summary_input)
        assert summary.startswith("This MSA agreement with Beta LLC has been analyzed.")
        assert "expires on 2026-12-31" in summary
        assert "4 clauses were identified, including 1 critical and 1 high-risk" in summary
        assert summary.endswith("consult legal counsel for important decisions.")

    def test_minimal_fields(self):
        summary = build_fallback_summary(SummaryInput(contract_text="", contract_type="Other"))
        assert summary == (
            "This Other agreement has been analyzed. Please review the full analysis "
            "and consult legal counsel for important decisions."
        )


class TestSummarizer:

    @pytest.mark.asyncio
    async def test_primary_provider(self, fake_provider, summary_input):
        primary = fake_provider("  This MSA agreement sets out services.  ")
        fallback = fake_provider("unused")

        summary = await Summarizer([primary, fallback]).generate_summary(summary_input)

        assert summary == "This MSA agreement sets out services."
        assert fallback.prompts == []
        prompt = primary.prompts[0]
        assert "Counterparty: Beta LLC" in prompt
        assert "Expiration Date: 2026-12-31" in prompt
        assert "liability: Unlimited liability exposure." in prompt
        # low and medium clauses are not listed as high-risk
        assert "governing_law:" not in prompt

    @pytest.mark.asyncio
    async def test_falls_back_to_second_provider(
        self, fake_provider, failing_responder, summary_input
    ):
        summary = await Summarizer([
            fake_provider(failing_responder()),
            fake_provider("Fallback model summary."),
        ]).generate_summary(summary_input)
        assert summary == "Fallback model summary."

    @pytest.mark.asyncio
    async def test_blank_response_tries_next(self, fake_provider, summary_input):
        summary = await Summarizer([
            fake_provider("   "),
            fake_provider("Second summary."),
        ]).generate_summary(summary_input)
        assert summary == "Second summary."

    @pytest.mark.asyncio
    async def test_template_when_all_fail(self, fake_provider, failing_responder, summary_input):
        summary = await Summarizer([
            fake_provider(failing_responder()),
            fake_provider(failing_responder()),
        ]).generate_summary(summary_input)
        assert summary == build_fallback_summary(summary_input)
