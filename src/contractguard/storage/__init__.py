"""
Storage adapters for ContractGuard.
"""

from contractguard.storage.postgres import PostgresAdapter
from contractguard.storage.redis_cache import RedisCache, make_search_key

__all__ = [
    "PostgresAdapter",
    "RedisCache",
    "make_search_key",
]
