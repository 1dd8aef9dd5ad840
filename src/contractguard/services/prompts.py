"""
Prompt templates for clause extraction, risk analysis and summaries.
"""

import json

from contractguard.models.clause import ClauseType, ExtractedClause, RiskLevel

CLAUSE_TYPE_VALUES = ", ".join(t.value for t in ClauseType)

# =============================================================================
# Clause Extraction
# =============================================================================


def build_clause_extraction_prompt(contract_text: str) -> str:
    return f"""You are a legal contract analysis AI. Your task is to extract and classify key clauses from the following contract text.

INSTRUCTIONS:
1. Identify all significant clauses in the contract.
2. For each clause, determine its type from this exact list: {CLAUSE_TYPE_VALUES}.
3. Assess risk level: "critical" (severe business impact), "high" (significant concern), "medium" (moderate concern), "low" (standard/acceptable).
4. Provide a concise risk explanation (1-2 sentences max).
5. Extract the exact verbatim text of the clause (max 500 words per clause).
6. Return ONLY valid JSON. No preamble, no markdown fences, no explanation.

OUTPUT FORMAT (JSON object with a "clauses" array):
{{
  "clauses": [
    {{
      "clause_type": "<type from list>",
      "text": "<exact clause text>",
      "risk_level": "<critical|high|medium|low>",
      "risk_explanation": "<why this is risky or acceptable>"
    }}
  ]
}}

CONTRACT TEXT:
---
{contract_text}
---

Return ONLY the JSON. No markdown. No explanation."""


# =============================================================================
# Dates and Contract Type
# =============================================================================


def build_date_extraction_prompt(contract_text: str) -> str:
    return f"""Extract key dates from this contract text.

CONTRACT TEXT:
---
{contract_text[:4000]}
---

OUTPUT FORMAT (JSON):
{{
  "effective_date": "<YYYY-MM-DD or null>",
  "expiration_date": "<YYYY-MM-DD or null>",
  "auto_renewal": <true|false>,
  "notice_period_days": <integer or null>
}}

Rules:
- Use ISO 8601 date format (YYYY-MM-DD)
- If a date is ambiguous or not present, use null
- auto_renewal is true only if the contract explicitly mentions automatic renewal
- notice_period_days is the number of days notice required to cancel (if stated)

Return ONLY the JSON object. No markdown. No explanation."""


def build_contract_type_prompt(contract_text: str) -> str:
    return f"""Identify the type of this legal contract.

CONTRACT TEXT (first 2000 chars):
---
{contract_text[:2000]}
---

Choose exactly one from: NDA, MSA, SaaS, Vendor, Employment, Other

OUTPUT FORMAT (JSON):
{{
  "type": "<NDA|MSA|SaaS|Vendor|Employment|Other>",
  "confidence": <0.0-1.0>,
  "counterparty": "<company or person name if identifiable, or null>"
}}

Return ONLY the JSON object. No markdown. No explanation."""


# =============================================================================
# Deep Risk Analysis
# =============================================================================

RISK_ANALYSIS_PROMPT = """You are a legal risk analyst. Analyze these contract clauses for business risk.

Clauses:
{clauses_json}

Calculate an overall risk score from 0-100 where:
- 0-25: Low risk (favorable terms)
- 26-50: Medium risk (standard commercial terms)
- 51-75: High risk (unfavorable terms, needs negotiation)
- 76-100: Critical risk (deal-breaking terms)

Return ONLY valid JSON in this exact format (no markdown, no explanation):
{{
  "risk_score": <number 0-100>,
  "reasoning": "<concise explanation in 2-3 sentences>",
  "top_risks": ["<risk 1>", "<risk 2>", "<risk 3>"]
}}

Focus on:
- Financial exposure (liability caps, indemnification)
- Lock-in risk (auto-renewal, termination difficulty)
- Compliance obligations (data processing, audits)
- Power imbalance (one-sided terms)"""

RISK_PROMPT_CLAUSE_CHARS = 300


def build_risk_prompt(clauses: list[ExtractedClause]) -> str:
    clauses_json = json.dumps(
        [
            {
                "type": c.clause_type.value,
                "risk_level": c.risk_level.value,
                "explanation": c.risk_explanation,
                "text": c.text[:RISK_PROMPT_CLAUSE_CHARS],
            }
            for c in clauses
        ],
        indent=2,
    )
    return RISK_ANALYSIS_PROMPT.format(clauses_json=clauses_json)


# =============================================================================
# Executive Summary
# =============================================================================

SUMMARY_TEXT_CHARS = 3000
SUMMARY_MAX_RISK_CLAUSES = 5


def build_summary_prompt(
    contract_text: str,
    contract_type: str,
    clauses: list[ExtractedClause],
    counterparty: str | None = None,
    effective_date: str | None = None,
    expiration_date: str | None = None,
) -> str:
    facts = [
        f"Contract Type: {contract_type}" if contract_type else None,
        f"Counterparty: {counterparty}" if counterparty else None,
        f"Effective Date: {effective_date}" if effective_date else None,
        f"Expiration Date: {expiration_date}" if expiration_date else None,
    ]
    key_facts = "\n".join(f for f in facts if f)

    risky = [
        c for c in clauses if c.risk_level in (RiskLevel.CRITICAL, RiskLevel.HIGH)
    ][:SUMMARY_MAX_RISK_CLAUSES]
    risky_lines = "\n".join(
        f"- {c.clause_type.value}: {c.risk_explanation}" for c in risky
    )

    return f"""You are a contract summarization AI for business owners who are NOT lawyers.
Write a clear, plain-English executive summary of this contract.

KEY CONTRACT FACTS:
{key_facts}

HIGH-RISK CLAUSES:
{risky_lines or "None identified"}

CONTRACT TEXT (excerpt):
---
{contract_text[:SUMMARY_TEXT_CHARS]}
---

REQUIREMENTS:
- Write 3-5 sentences maximum
- Use plain English, no legal jargon
- Focus on: what the contract does, key obligations, main risks
- Start with "This [contract type] agreement..."
- Do NOT use bullet points, write flowing prose

Return ONLY the summary text. No labels, no markdown, no explanation."""
