"""
Redis caching adapter.
"""

import hashlib
import json
from typing import Any, Awaitable, Callable, Sequence
from uuid import UUID

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = structlog.get_logger(__name__)


def make_search_key(
    tenant_id: UUID | str,
    query: str,
    limit: int,
    min_score: float,
    contract_ids: Sequence[UUID | str] | None = None,
    contract_types: Sequence[str] | None = None,
) -> str:
    """Cache key for a search over a tenant's documents."""
    normalized = " ".join(query.lower().split())
    query_hash = hashlib.sha256(normalized.encode()).hexdigest()[:16]

    if contract_ids:
        ids = "|".join(sorted(str(c) for c in contract_ids))
        scope = "ids-" + hashlib.sha256(ids.encode()).hexdigest()[:16]
    elif contract_types:
        scope = "types-" + "|".join(sorted(str(t) for t in contract_types))
    else:
        scope = "all"

    return f"search:{tenant_id}:{query_hash}:{limit}:{min_score}:{scope}"


def tenant_search_pattern(tenant_id: UUID | str) -> str:
    return f"search:{tenant_id}:*"


class RedisCache:
    """
    Redis caching adapter.

    Caches search responses with short TTLs. Every failure is treated as a
    miss, so callers never depend on the cache for correctness.
    """

    def __init__(self, client: Redis, default_ttl: int = 300):
        self.client = client
        self.default_ttl = default_ttl

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            await self.client.ping()
            return True
        except RedisError as e:
            logger.error("redis_health_check_failed", error=str(e))
            return False

    # =========================================================================
    # Basic Operations
    # =========================================================================

    async def get(self, key: str) -> Any | None:
        """Get a value from cache."""
        try:
            value = await self.client.get(key)
            if value:
                return json.loads(value)
            return None
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set a value in cache."""
        try:
            serialized = json.dumps(value, default=str)
            await self.client.setex(key, ttl or self.default_ttl, serialized)
            return True
        except (RedisError, TypeError) as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """Delete a key from cache."""
        try:
            await self.client.delete(key)
            return True
        except RedisError as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
            return False

    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        deleted = 0
        try:
            batch: list[str] = []
            async for key in self.client.scan_iter(match=pattern, count=100):
                batch.append(key)
                if len(batch) >= 100:
                    deleted += await self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.client.delete(*batch)
        except RedisError as e:
            logger.warning("cache_invalidate_failed", pattern=pattern, error=str(e))
            return deleted

        logger.debug("cache_invalidated", pattern=pattern, deleted=deleted)
        return deleted

    async def invalidate_tenant_search(self, tenant_id: UUID | str) -> int:
        return await self.invalidate(tenant_search_pattern(tenant_id))

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
    ) -> tuple[Any, bool]:
        """
        Return the cached value or compute and store it.

        Returns:
            The value and whether it came from the cache.
        """
        cached = await self.get(key)
        if cached is not None:
            logger.debug("cache_hit", key=key)
            return cached, True

        value = await factory()
        await self.set(key, value, ttl)
        return value, False
