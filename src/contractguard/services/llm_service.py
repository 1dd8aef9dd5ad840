"""
Completion service clients.

Providers share a single `call(prompt) -> str` capability and are tried
in order by a ProviderChain until one succeeds. Responses are parsed into
validated pydantic shapes with `parse_json_response`.
"""

import asyncio
import json
import re
from typing import Any, Awaitable, Callable, Protocol, TypeVar

import httpx
import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from contractguard.errors import ProviderError, ResponseParseError

logger = structlog.get_logger(__name__)

T = TypeVar("T")
SleepFn = Callable[[float], Awaitable[None]]

JSON_SYSTEM_PROMPT = (
    "You are a legal contract analysis AI. Always respond with valid JSON only. "
    "No markdown, no explanation."
)
SUMMARY_SYSTEM_PROMPT = (
    "You are a contract summarization assistant. Write clear, concise summaries "
    "for business owners. No legal jargon. No markdown."
)


class CompletionProvider(Protocol):
    """Anything that can turn a prompt into completion text."""

    name: str

    async def call(self, prompt: str) -> str:
        ...


class RetryableCompletionError(Exception):
    """Completion API answered 429 or 5xx."""

    def __init__(self, status_code: int, detail: str, retry_after: float | None = None):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail
        self.retry_after = retry_after


class GroqProvider:
    """
    OpenAI-compatible chat completion provider (Groq).

    One instance per model and generation profile. Rate limits, 5xx answers
    and transport errors are retried with backoff before the call fails over
    to the next provider in the chain; other 4xx answers fail at once.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str,
        api_url: str = "https://api.groq.com/openai/v1/chat/completions",
        system_prompt: str = JSON_SYSTEM_PROMPT,
        temperature: float = 0.1,
        max_tokens: int = 4096,
        timeout: float = 20.0,
        json_mode: bool = True,
        max_retries: int = 2,
        base_retry_delay: float = 1.0,
        default_retry_after: float = 5.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.http = http_client
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.json_mode = json_mode
        self.max_retries = max_retries
        self.base_retry_delay = base_retry_delay
        self.default_retry_after = default_retry_after
        self._sleep = sleep

    @property
    def name(self) -> str:
        return f"groq:{self.model}"

    def _payload(self, prompt: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def call(self, prompt: str) -> str:
        """Send one chat completion request and return the message content."""
        if not self.api_key:
            raise ProviderError("GROQ_API_KEY is not set", provider="groq", model=self.model)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._retry_wait,
            retry=retry_if_exception_type((RetryableCompletionError, httpx.TransportError)),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    data = await self._post(prompt)
        except RetryableCompletionError as e:
            raise ProviderError(
                f"Completion API error ({self.model}) {e.status_code}: {e.detail}",
                provider="groq",
                model=self.model,
                original_error=e,
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                f"Completion request failed ({self.model}): {e}",
                provider="groq",
                model=self.model,
                original_error=e,
            ) from e

        choices = data.get("choices") or [{}]
        content = ((choices[0].get("message") or {}).get("content") or "").strip()
        if not content:
            raise ProviderError(
                f"Completion model {self.model} returned an empty response",
                provider="groq",
                model=self.model,
            )
        return content

    async def _post(self, prompt: str) -> dict[str, Any]:
        response = await self.http.post(
            self.api_url,
            json=self._payload(prompt),
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )

        if response.status_code == 429:
            raise RetryableCompletionError(
                429, response.text[:200], retry_after=self._retry_after(response)
            )
        if response.status_code >= 500:
            raise RetryableCompletionError(response.status_code, response.text[:200])
        if response.is_error:
            raise ProviderError(
                f"Completion API error ({self.model}) {response.status_code}: "
                f"{response.text[:200]}",
                provider="groq",
                model=self.model,
            )
        return response.json()

    def _retry_after(self, response: httpx.Response) -> float:
        value = response.headers.get("retry-after")
        try:
            return float(value) if value is not None else self.default_retry_after
        except ValueError:
            return self.default_retry_after

    def _retry_wait(self, retry_state: RetryCallState) -> float:
        """Provider-supplied delay on 429, exponential backoff otherwise."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RetryableCompletionError) and exc.retry_after is not None:
            return exc.retry_after
        return self.base_retry_delay * (2 ** (retry_state.attempt_number - 1))

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "completion_retry",
            model=self.model,
            attempt=retry_state.attempt_number,
            delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc),
        )


class ProviderChain:
    """Ordered list of providers; the first one that succeeds wins."""

    def __init__(self, providers: list[CompletionProvider]):
        if not providers:
            raise ValueError("ProviderChain needs at least one provider")
        self.providers = providers

    @property
    def name(self) -> str:
        return " -> ".join(p.name for p in self.providers)

    async def call(self, prompt: str) -> str:
        """Try each provider in order; raise once all have failed."""
        last_error: Exception | None = None
        for position, provider in enumerate(self.providers):
            try:
                return await provider.call(prompt)
            except Exception as e:
                last_error = e
                logger.warning(
                    "provider_failed",
                    provider=provider.name,
                    position=position,
                    remaining=len(self.providers) - position - 1,
                    error=str(e),
                )
        raise ProviderError(
            f"All completion providers failed: {last_error}",
            provider=self.name,
            original_error=last_error,
        ) from last_error


# =============================================================================
# Response Parsing
# =============================================================================

_LEADING_JSON_FENCE = re.compile(r"^```json\s*", re.IGNORECASE)
_LEADING_FENCE = re.compile(r"^```\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")
_JSON_BLOCK = re.compile(r"[\[{][\s\S]*[\]}]")


def strip_code_fences(raw: str) -> str:
    """Remove markdown code fences some models add despite instructions."""
    cleaned = raw.strip()
    cleaned = _LEADING_JSON_FENCE.sub("", cleaned)
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    return cleaned.strip()


def load_json(raw: str) -> Any:
    """Decode JSON from a completion, unwrapping a single-key list wrapper."""
    cleaned = strip_code_fences(raw)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_BLOCK.search(cleaned)
        if not match:
            raise ResponseParseError(
                f"No valid JSON found in completion: {cleaned[:200]}"
            )
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ResponseParseError(f"Malformed JSON in completion: {e}", e) from e

    # {"clauses": [...]} -> [...]
    if isinstance(parsed, dict) and len(parsed) == 1:
        (value,) = parsed.values()
        if isinstance(value, list):
            parsed = value
    return parsed


def parse_json_response(raw: str, schema: type[T] | Any) -> T:
    """Parse and validate a completion against a pydantic-compatible schema."""
    parsed = load_json(raw)
    try:
        return TypeAdapter(schema).validate_python(parsed)
    except PydanticValidationError as e:
        raise ResponseParseError(
            f"Completion did not match expected schema: {e.error_count()} errors", e
        ) from e
