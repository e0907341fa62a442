"""Durable cache tier contract and its SQLite implementation.

The durable tier is shared across processes and outlives them. Reads return
stored records as-is; the caller decides whether a search entry is fresh.
Any storage failure surfaces as DurableCacheError so the caller can fall
through to the upstream provider.
"""

import sqlite3
from typing import Optional, Protocol, runtime_checkable

from cache.database import CacheDatabase, get_cache_db
from cache.paper_cache import PaperCache
from cache.search_cache import SearchCache
from models.paper import Paper
from models.search import SearchCacheEntry
from utils.errors import DurableCacheError

# Failures of the storage layer and undecodable rows
_STORAGE_ERRORS = (sqlite3.Error, OSError, ValueError, KeyError, TypeError, AttributeError)


@runtime_checkable
class DurableCache(Protocol):
    """Operations the orchestrator needs from a durable store."""

    async def get_by_key(self, key: str) -> Optional[SearchCacheEntry]:
        ...

    async def upsert(self, entry: SearchCacheEntry) -> None:
        ...

    async def get_paper_by_id(self, paper_id: str) -> Optional[Paper]:
        ...

    async def upsert_paper(self, paper: Paper) -> None:
        ...


class SQLiteDurableCache:
    """DurableCache backed by the local SQLite cache database."""

    def __init__(self, db: Optional[CacheDatabase] = None):
        self.db = db or get_cache_db()
        self.searches = SearchCache(self.db)
        self.papers = PaperCache(self.db)

    async def get_by_key(self, key: str) -> Optional[SearchCacheEntry]:
        """Return the stored entry for ``key``, expired or not."""
        try:
            return await self.searches.get_async(key, ignore_expired=True)
        except _STORAGE_ERRORS as e:
            raise DurableCacheError(
                f"Failed to read search entry: {e}", context={"key": key}
            ) from e

    async def upsert(self, entry: SearchCacheEntry) -> None:
        try:
            await self.searches.save_async(entry)
        except _STORAGE_ERRORS as e:
            raise DurableCacheError(
                f"Failed to write search entry: {e}", context={"key": entry.key}
            ) from e

    async def get_paper_by_id(self, paper_id: str) -> Optional[Paper]:
        try:
            return await self.papers.get_async(paper_id)
        except _STORAGE_ERRORS as e:
            raise DurableCacheError(
                f"Failed to read paper: {e}", context={"paper_id": paper_id}
            ) from e

    async def upsert_paper(self, paper: Paper) -> None:
        """Insert or fully replace a paper record."""
        try:
            await self.papers.save_async(paper)
        except _STORAGE_ERRORS as e:
            raise DurableCacheError(
                f"Failed to write paper: {e}", context={"paper_id": paper.paper_id}
            ) from e

    def cleanup(self) -> int:
        """Delete expired search entries. Returns the number removed."""
        try:
            return self.searches.clear_expired()
        except _STORAGE_ERRORS as e:
            raise DurableCacheError(f"Failed to clear expired entries: {e}") from e

    def get_stats(self) -> dict:
        try:
            return self.db.get_stats()
        except _STORAGE_ERRORS as e:
            raise DurableCacheError(f"Failed to read cache stats: {e}") from e


__all__ = ["DurableCache", "SQLiteDurableCache"]
