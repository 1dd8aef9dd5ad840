"""
Embedding service client.

Turns chunks or a query string into fixed-dimension vectors through the
Jina embeddings API, with batching, rate-limit handling and backoff.
"""

import asyncio
from typing import Any, Awaitable, Callable

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from contractguard.config import Settings
from contractguard.errors import ProviderError
from contractguard.models.embedding import EmbeddingResult, TextChunk

logger = structlog.get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class RateLimitedError(Exception):
    """Provider answered 429."""

    def __init__(self, retry_after: float):
        super().__init__(f"Rate limited, retry after {retry_after}s")
        self.retry_after = retry_after


class EmbeddingService:
    """
    Batched client for the embedding provider.

    Batches are sent sequentially with a short pause between them. A 429
    sleeps for the provider's retry-after value; timeouts and connection
    errors back off exponentially. Both share the same retry bound.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.http = http_client
        self.settings = settings
        self.api_url = settings.jina_api_url
        self.api_key = settings.jina_api_key
        self.model = settings.embedding_model
        self.dimension = settings.embedding_dimension
        self.batch_size = settings.embedding_batch_size
        self.batch_pause = settings.embedding_batch_pause_ms / 1000
        self.max_retries = settings.embedding_max_retries
        self.base_retry_delay = settings.embedding_base_retry_delay
        self.default_retry_after = settings.embedding_default_retry_after
        self.timeout = settings.embedding_timeout
        self._sleep = sleep

    # =========================================================================
    # Public API
    # =========================================================================

    async def embed_batch(self, chunks: list[TextChunk]) -> list[EmbeddingResult]:
        """Embed chunks, one provider call per batch."""
        if not chunks:
            return []

        total_batches = (len(chunks) + self.batch_size - 1) // self.batch_size
        logger.info(
            "embedding_started",
            chunks=len(chunks),
            batches=total_batches,
        )

        results: list[EmbeddingResult] = []
        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start:start + self.batch_size]
            vectors = await self.embed_texts([c.text for c in batch])
            results.extend(
                EmbeddingResult(
                    chunk_index=chunk.index,
                    chunk_hash=chunk.content_hash,
                    embedding=vector,
                    token_count=chunk.token_count,
                )
                for chunk, vector in zip(batch, vectors)
            )
            if start + self.batch_size < len(chunks):
                await self._sleep(self.batch_pause)

        logger.info("embedding_complete", embeddings=len(results))
        return results

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single search query."""
        vectors = await self.embed_texts([text])
        return vectors[0]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed raw strings with retry; returns one vector per input."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._retry_wait,
            retry=retry_if_exception_type((RateLimitedError, httpx.TransportError)),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    payload = await self._post(texts)
        except RateLimitedError as e:
            raise ProviderError(
                "Embedding rate limit exceeded after max retries",
                provider="jina",
                model=self.model,
                original_error=e,
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                f"Embedding request failed: {e}",
                provider="jina",
                model=self.model,
                original_error=e,
            ) from e

        return self._validate(payload, len(texts))

    # =========================================================================
    # Internals
    # =========================================================================

    async def _post(self, texts: list[str]) -> dict[str, Any]:
        if not self.api_key:
            raise ProviderError("JINA_API_KEY is not set", provider="jina")

        response = await self.http.post(
            self.api_url,
            json={"model": self.model, "input": texts, "normalized": True},
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )

        if response.status_code == 429:
            raise RateLimitedError(self._retry_after(response))

        if response.is_error:
            raise ProviderError(
                f"Embedding API error {response.status_code}: {response.text[:200]}",
                provider="jina",
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
        if isinstance(exc, RateLimitedError):
            return exc.retry_after
        return self.base_retry_delay * (2 ** (retry_state.attempt_number - 1))

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "embedding_retry",
            attempt=retry_state.attempt_number,
            delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc),
        )

    def _validate(self, payload: dict[str, Any], expected: int) -> list[list[float]]:
        """Reject responses with the wrong vector count or dimensionality."""
        data = payload.get("data")
        if not isinstance(data, list) or len(data) != expected:
            raise ProviderError(
                f"Embedding API returned {len(data) if isinstance(data, list) else 0} "
                f"vectors for {expected} inputs",
                provider="jina",
                model=self.model,
            )

        items = sorted(data, key=lambda item: item.get("index", 0))
        vectors = []
        for item in items:
            vector = item.get("embedding")
            if not isinstance(vector, list) or len(vector) != self.dimension:
                raise ProviderError(
                    f"Invalid embedding: expected {self.dimension} dimensions",
                    provider="jina",
                    model=self.model,
                )
            vectors.append(vector)
        return vectors
