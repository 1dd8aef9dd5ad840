"""Tests for contractguard/services/llm_service.py — providers, fallback chain, JSON parsing."""

import json

import httpx
import pytest

from contractguard.errors import ProviderError, ResponseParseError
from contractguard.models.clause import ContractTypeDetection, ExtractedClause
from contractguard.services.llm_service import (
    GroqProvider,
    ProviderChain,
    load_json,
    parse_json_response,
    strip_code_fences,
)


def chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


class Recorder:
    """Fake sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_provider(handler, **kwargs) -> tuple[GroqProvider, list[httpx.Request]]:
    calls: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
    kwargs.setdefault("api_key", "test-groq-key")
    kwargs.setdefault("model", "llama-test")
    kwargs.setdefault("sleep", Recorder())
    return GroqProvider(client, **kwargs), calls


class TestGroqProvider:

    @pytest.mark.asyncio
    async def test_returns_stripped_content(self):
        provider, _ = make_provider(lambda req: chat_response('  {"ok": true}  \n'))
        assert await provider.call("prompt") == '{"ok": true}'

    @pytest.mark.asyncio
    async def test_payload_json_mode(self):
        provider, calls = make_provider(lambda req: chat_response("{}"), temperature=0.1)
        await provider.call("extract clauses")

        body = json.loads(calls[0].content)
        assert body["model"] == "llama-test"
        assert body["temperature"] == 0.1
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0]["role"] == "system"
        assert body["messages"][1] == {"role": "user", "content": "extract clauses"}
        assert calls[0].headers["Authorization"] == "Bearer test-groq-key"

    @pytest.mark.asyncio
    async def test_payload_plain_text_mode(self):
        provider, calls = make_provider(lambda req: chat_response("Summary."), json_mode=False)
        await provider.call("summarize")
        assert "response_format" not in json.loads(calls[0].content)

    @pytest.mark.asyncio
    async def test_http_error_raises_provider_error(self):
        provider, _ = make_provider(lambda req: httpx.Response(503, text="over capacity"))
        with pytest.raises(ProviderError) as exc_info:
            await provider.call("prompt")
        assert exc_info.value.provider == "groq"
        assert exc_info.value.model == "llama-test"
        assert "503" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_raises_provider_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider, _ = make_provider(handler)
        with pytest.raises(ProviderError) as exc_info:
            await provider.call("prompt")
        assert isinstance(exc_info.value.original_error, httpx.ReadTimeout)

    @pytest.mark.asyncio
    async def test_empty_content_is_an_error(self):
        provider, _ = make_provider(lambda req: chat_response("   "))
        with pytest.raises(ProviderError, match="empty response"):
            await provider.call("prompt")

    @pytest.mark.asyncio
    async def test_missing_api_key_skips_request(self):
        provider, calls = make_provider(lambda req: chat_response("{}"), api_key="")
        with pytest.raises(ProviderError):
            await provider.call("prompt")
        assert calls == []

    def test_name_includes_model(self):
        provider, _ = make_provider(lambda req: chat_response("{}"))
        assert provider.name == "groq:llama-test"


def sequence(*steps):
    """Handler replaying responses (or raising exceptions) in order."""
    remaining = list(steps)

    def handler(request: httpx.Request) -> httpx.Response:
        step = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(step, Exception):
            raise step
        return step

    return handler


class TestGroqProviderRetries:

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self):
        sleep = Recorder()
        provider, calls = make_provider(
            sequence(httpx.Response(429, headers={"retry-after": "3"}), chat_response("{}")),
            sleep=sleep,
        )

        assert await provider.call("prompt") == "{}"
        assert len(calls) == 2
        assert sleep.delays == [3.0]

    @pytest.mark.asyncio
    async def test_rate_limit_without_header_uses_default(self):
        sleep = Recorder()
        provider, _ = make_provider(
            sequence(httpx.Response(429), chat_response("{}")),
            sleep=sleep,
            default_retry_after=5.0,
        )
        await provider.call("prompt")
        assert sleep.delays == [5.0]

    @pytest.mark.asyncio
    async def test_server_error_backs_off_exponentially(self):
        sleep = Recorder()
        provider, calls = make_provider(
            sequence(
                httpx.Response(502, text="bad gateway"),
                httpx.Response(503, text="over capacity"),
                chat_response("ok"),
            ),
            sleep=sleep,
        )

        assert await provider.call("prompt") == "ok"
        assert len(calls) == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_connection_reset_retried(self):
        request = httpx.Request("POST", "https://api.groq.test")
        sleep = Recorder()
        provider, calls = make_provider(
            sequence(httpx.ConnectError("connection reset", request=request), chat_response("ok")),
            sleep=sleep,
        )
        assert await provider.call("prompt") == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self):
        sleep = Recorder()
        provider, calls = make_provider(
            lambda req: httpx.Response(429, headers={"retry-after": "1"}),
            sleep=sleep,
            max_retries=2,
        )

        with pytest.raises(ProviderError, match="429") as exc_info:
            await provider.call("prompt")

        assert len(calls) == 3
        assert sleep.delays == [1.0, 1.0]
        assert exc_info.value.original_error is not None

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        sleep = Recorder()
        provider, calls = make_provider(
            lambda req: httpx.Response(400, text="bad request"), sleep=sleep
        )
        with pytest.raises(ProviderError, match="400"):
            await provider.call("prompt")
        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_chain_stays_on_primary_after_transient_429(self):
        primary, primary_calls = make_provider(
            sequence(httpx.Response(429, headers={"retry-after": "0"}), chat_response("primary")),
            model="primary-model",
        )
        fallback, fallback_calls = make_provider(
            lambda req: chat_response("fallback"), model="fallback-model"
        )

        assert await ProviderChain([primary, fallback]).call("x") == "primary"
        assert len(primary_calls) == 2
        assert fallback_calls == []


class TestProviderChain:

    @pytest.mark.asyncio
    async def test_first_success_wins(self, fake_provider):
        primary = fake_provider("primary answer", name="primary")
        fallback = fake_provider("fallback answer", name="fallback")
        chain = ProviderChain([primary, fallback])

        assert await chain.call("p") == "primary answer"
        assert fallback.prompts == []

    @pytest.mark.asyncio
    async def test_falls_back_on_failure(self, fake_provider, failing_responder):
        primary = fake_provider(failing_responder(), name="primary")
        fallback = fake_provider("fallback answer", name="fallback")
        chain = ProviderChain([primary, fallback])

        assert await chain.call("p") == "fallback answer"
        assert primary.prompts == ["p"]
        assert fallback.prompts == ["p"]

    @pytest.mark.asyncio
    async def test_all_failed(self, fake_provider, failing_responder):
        chain = ProviderChain([
            fake_provider(failing_responder("first down"), name="a"),
            fake_provider(failing_responder("second down"), name="b"),
        ])
        with pytest.raises(ProviderError, match="second down") as exc_info:
            await chain.call("p")
        assert exc_info.value.provider == "a -> b"

    def test_requires_providers(self):
        with pytest.raises(ValueError):
            ProviderChain([])


class TestStripCodeFences:

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('```\n[1, 2]\n```') == "[1, 2]"

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


class TestLoadJson:

    def test_plain_object(self):
        assert load_json('{"a": 1, "b": 2}') == {"a": 1, "b": 2}

    def test_unwraps_single_list_wrapper(self):
        assert load_json('{"clauses": [{"x": 1}]}') == [{"x": 1}]

    def test_single_scalar_key_not_unwrapped(self):
        assert load_json('{"type": "NDA"}') == {"type": "NDA"}

    def test_json_embedded_in_prose(self):
        assert load_json('Here is the result: {"a": 1} Hope it helps.') == {"a": 1}

    def test_no_json(self):
        with pytest.raises(ResponseParseError):
            load_json("I cannot help with that.")

    def test_malformed_json(self):
        with pytest.raises(ResponseParseError):
            load_json("{not json at all}")


class TestParseJsonResponse:

    def test_validates_list_of_models(self):
        raw = json.dumps({"clauses": [{
            "clause_type": "liability",
            "text": "Liability is capped at fees paid.",
            "risk_level": "low",
            "risk_explanation": "Standard cap.",
        }]})
        clauses = parse_json_response(raw, list[ExtractedClause])
        assert len(clauses) == 1
        assert clauses[0].clause_type.value == "liability"

    def test_rejects_unknown_enum_value(self):
        raw = json.dumps([{
            "clause_type": "made_up_type",
            "text": "Some text.",
            "risk_level": "low",
            "risk_explanation": "n/a",
        }])
        with pytest.raises(ResponseParseError):
            parse_json_response(raw, list[ExtractedClause])

    def test_rejects_out_of_range(self):
        raw = '{"type": "NDA", "confidence": 1.7, "counterparty": null}'
        with pytest.raises(ResponseParseError):
            parse_json_response(raw, ContractTypeDetection)
