"""ScholarCache cache system.

Two tiers in front of a rate-limited search provider:
- Ephemeral: bounded in-process cache with TTL and LRU batch eviction
- Durable: SQLite store shared across processes (search snapshots with
  TTL, paper records without)

FetchOrchestrator ties the tiers to the upstream client.
"""

from cache.database import CacheDatabase, get_cache_db, init_cache
from cache.durable import DurableCache, SQLiteDurableCache
from cache.ephemeral import CacheEnvelope, CacheStats, EphemeralCache
from cache.keys import derive_query_key, paper_cache_key, search_cache_key
from cache.orchestrator import FetchOrchestrator, create_orchestrator
from cache.paper_cache import PaperCache
from cache.search_cache import SearchCache

__all__ = [
    "CacheDatabase",
    "get_cache_db",
    "init_cache",
    "DurableCache",
    "SQLiteDurableCache",
    "EphemeralCache",
    "CacheEnvelope",
    "CacheStats",
    "derive_query_key",
    "search_cache_key",
    "paper_cache_key",
    "FetchOrchestrator",
    "create_orchestrator",
    "PaperCache",
    "SearchCache",
]
