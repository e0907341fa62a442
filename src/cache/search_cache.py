"""Durable search results cache with TTL.

Stores whole SearchCacheEntry snapshots keyed by the derived query key.
Reads return stored entries as-is; callers decide whether an entry is
still fresh.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiosqlite

from cache.database import CacheDatabase, get_cache_db, utc_isoformat
from models.paper import Paper
from models.search import SearchCacheEntry, SearchFilters, parse_timestamp

logger = logging.getLogger(__name__)


class SearchCache:
    """Cache for search result snapshots."""

    def __init__(self, db: Optional[CacheDatabase] = None):
        """Initialize search cache.

        Args:
            db: CacheDatabase instance. Uses global instance if not provided.
        """
        self.db = db or get_cache_db()

    def _row_to_entry(self, row: Any) -> SearchCacheEntry:
        """Convert database row to a SearchCacheEntry.

        Args:
            row: Database row

        Returns:
            SearchCacheEntry
        """
        results = json.loads(row["results"]) if row["results"] else []
        filters = json.loads(row["filters"]) if row["filters"] else None
        if not isinstance(results, list):
            raise ValueError(f"Malformed results for {row['query_hash']}: expected a list")
        return SearchCacheEntry(
            key=row["query_hash"],
            query=row["query"],
            results=[Paper.from_dict(p) for p in results],
            total_requested=row["total_requested"],
            successful_count=row["successful_count"],
            rate_limited_count=row["rate_limited_count"],
            updated_at=parse_timestamp(row["updated_at"]),
            expires_at=parse_timestamp(row["expires_at"]),
            filters=SearchFilters.from_dict(filters),
        )

    def _entry_params(self, entry: SearchCacheEntry) -> tuple:
        filters = None
        if entry.filters is not None and not entry.filters.is_empty():
            filters = json.dumps(entry.filters.to_dict(), sort_keys=True)
        return (
            entry.key,
            entry.query,
            filters,
            json.dumps([paper.to_dict() for paper in entry.results]),
            entry.total_requested,
            entry.successful_count,
            entry.rate_limited_count,
            utc_isoformat(entry.updated_at),
            utc_isoformat(entry.expires_at),
        )

    _UPSERT_SQL = """
        INSERT INTO search_cache (
            query_hash, query, filters, results, total_requested,
            successful_count, rate_limited_count, updated_at, expires_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(query_hash) DO UPDATE SET
            query = excluded.query,
            filters = excluded.filters,
            results = excluded.results,
            total_requested = excluded.total_requested,
            successful_count = excluded.successful_count,
            rate_limited_count = excluded.rate_limited_count,
            updated_at = excluded.updated_at,
            expires_at = excluded.expires_at
    """

    # Synchronous methods

    def get(self, query_hash: str, ignore_expired: bool = True) -> Optional[SearchCacheEntry]:
        """Get a cached search entry (sync).

        Args:
            query_hash: Derived query key
            ignore_expired: If True, return the entry even if expired

        Returns:
            SearchCacheEntry or None if not cached
        """
        self.db.init_schema()

        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM search_cache WHERE query_hash = ?",
                (query_hash,)
            )
            row = cursor.fetchone()

        if row is None:
            return None
        entry = self._row_to_entry(row)
        if not ignore_expired and entry.is_expired():
            return None
        return entry

    def delete(self, query_hash: str) -> bool:
        """Delete a cached search entry (sync).

        Returns:
            True if an entry was deleted
        """
        self.db.init_schema()

        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM search_cache WHERE query_hash = ?",
                (query_hash,)
            )
            conn.commit()
            return cursor.rowcount > 0

    def clear(self, pattern: Optional[str] = None) -> int:
        """Delete all entries, or those whose query text matches ``pattern`` (sync).

        Args:
            pattern: Regular expression searched in the query text

        Returns:
            Number of entries deleted
        """
        self.db.init_schema()

        with self.db.get_connection() as conn:
            if pattern is None:
                cursor = conn.execute("DELETE FROM search_cache")
                conn.commit()
                return cursor.rowcount

            regex = re.compile(pattern)
            rows = conn.execute("SELECT query_hash, query FROM search_cache").fetchall()
            matching = [(row["query_hash"],) for row in rows if regex.search(row["query"])]
            conn.executemany("DELETE FROM search_cache WHERE query_hash = ?", matching)
            conn.commit()
            return len(matching)

    def clear_expired(self) -> int:
        """Clear all expired cache entries (sync).

        Returns:
            Number of entries cleared
        """
        return self.db.clear_expired_cache()

    def list_entries(self, limit: int = 50) -> List[Dict[str, Any]]:
        """List cached searches without their results (for debugging/stats).

        Args:
            limit: Maximum rows to return

        Returns:
            Newest entries first
        """
        self.db.init_schema()
        now = utc_isoformat(datetime.now(timezone.utc))

        with self.db.get_connection() as conn:
            cursor = conn.execute("""
                SELECT query_hash, query, filters, total_requested, successful_count,
                       rate_limited_count, updated_at, expires_at,
                       expires_at < ? AS expired
                FROM search_cache
                ORDER BY updated_at DESC
                LIMIT ?
            """, (now, limit))
            return [dict(row) for row in cursor.fetchall()]

    # Asynchronous methods

    async def get_async(
        self,
        query_hash: str,
        ignore_expired: bool = True
    ) -> Optional[SearchCacheEntry]:
        """Get a cached search entry (async).

        Args:
            query_hash: Derived query key
            ignore_expired: If True, return the entry even if expired

        Returns:
            SearchCacheEntry or None
        """
        await self.db.init_schema_async()

        async with aiosqlite.connect(self.db.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM search_cache WHERE query_hash = ?",
                (query_hash,)
            )
            row = await cursor.fetchone()

        if row is None:
            logger.debug(f"Durable search cache miss: {query_hash[:12]}")
            return None

        entry = self._row_to_entry(row)
        if not ignore_expired and entry.is_expired():
            return None
        logger.debug(f"Durable search cache hit: {query_hash[:12]} ({len(entry.results)} papers)")
        return entry

    async def save_async(self, entry: SearchCacheEntry) -> str:
        """Save a search entry, replacing any previous one for the key (async).

        Args:
            entry: Search entry to store

        Returns:
            Query hash
        """
        await self.db.init_schema_async()

        async with aiosqlite.connect(self.db.db_path) as db:
            await db.execute(self._UPSERT_SQL, self._entry_params(entry))
            await db.commit()

        logger.debug(
            f"Cached {len(entry.results)} results for query: {entry.query[:50]}... "
            f"(expires: {entry.expires_at})"
        )
        return entry.key


# Export
__all__ = ["SearchCache"]
