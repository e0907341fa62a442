"""SQLite storage for the ScholarCache durable tier.

One database file holds paper records and search snapshots. The schema
version lives in SQLite's ``user_version`` pragma; opening a file with an
older version applies the schema script, which only creates what is missing.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import aiosqlite

from utils.config import Config

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "scholarcache.db"
SCHEMA_VERSION = 1

# Seconds a connection waits on a lock held by another process
BUSY_TIMEOUT = 5.0

SCHEMA_SQL = """
-- Paper records, no TTL
CREATE TABLE IF NOT EXISTS papers (
    paper_id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    year INTEGER,
    venue TEXT,
    citation_count INTEGER,
    doi TEXT,
    data TEXT NOT NULL,  -- JSON of the full Paper record
    created_at TEXT,
    updated_at TEXT
);

-- Search result snapshots with TTL
CREATE TABLE IF NOT EXISTS search_cache (
    query_hash TEXT PRIMARY KEY,
    query TEXT NOT NULL,
    filters TEXT,  -- canonical JSON, NULL for unfiltered searches
    results TEXT NOT NULL,  -- JSON list of Paper records
    total_requested INTEGER NOT NULL,
    successful_count INTEGER NOT NULL,
    rate_limited_count INTEGER NOT NULL,
    updated_at TEXT NOT NULL,  -- ISO 8601, UTC
    expires_at TEXT NOT NULL   -- ISO 8601, UTC
);

CREATE INDEX IF NOT EXISTS idx_papers_doi ON papers(doi);
CREATE INDEX IF NOT EXISTS idx_search_cache_expires ON search_cache(expires_at);
"""


def utc_isoformat(value: datetime) -> str:
    """Serialize a timestamp as UTC ISO 8601 so stored values sort correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _now_iso() -> str:
    return utc_isoformat(datetime.now(timezone.utc))


class CacheDatabase:
    """Owns the database file and hands out sync and async connections."""

    def __init__(self, db_path: Optional[Path] = None):
        """
        Args:
            db_path: SQLite file, Config.CACHE_DIR/scholarcache.db by default
        """
        self.db_path = Path(db_path) if db_path is not None else Config.CACHE_DIR / DEFAULT_DB_NAME
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False

    def init_schema(self) -> None:
        if self._initialized:
            return

        with self.get_connection() as conn:
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version < SCHEMA_VERSION:
                conn.executescript(SCHEMA_SQL)
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
                conn.commit()
                logger.info(f"Created cache schema v{SCHEMA_VERSION} at {self.db_path}")

        self._initialized = True

    async def init_schema_async(self) -> None:
        if self._initialized:
            return

        async with aiosqlite.connect(self.db_path, timeout=BUSY_TIMEOUT) as db:
            cursor = await db.execute("PRAGMA user_version")
            version = (await cursor.fetchone())[0]
            if version < SCHEMA_VERSION:
                await db.executescript(SCHEMA_SQL)
                await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
                await db.commit()
                logger.info(f"Created cache schema v{SCHEMA_VERSION} at {self.db_path}")

        self._initialized = True

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a synchronous connection with ``sqlite3.Row`` rows, closed on exit."""
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row
        # WAL lets readers in other processes proceed during writes
        conn.execute("PRAGMA journal_mode = WAL")
        try:
            yield conn
        finally:
            conn.close()

    def get_stats(self) -> Dict[str, Any]:
        """Row counts, expired search count and file size."""
        self.init_schema()
        with self.get_connection() as conn:
            papers = conn.execute("SELECT COUNT(*) FROM papers").fetchone()[0]
            searches, expired = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(expires_at < ?), 0) FROM search_cache",
                (_now_iso(),),
            ).fetchone()

        return {
            "papers_count": papers,
            "search_cache_count": searches,
            "expired_searches": expired,
            "db_size_mb": round(self.db_path.stat().st_size / (1024 * 1024), 2),
        }

    def clear_expired_cache(self) -> int:
        """Delete search snapshots past their expiry. Returns the number deleted."""
        self.init_schema()
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM search_cache WHERE expires_at < ?", (_now_iso(),))
            conn.commit()
            count = cursor.rowcount

        logger.info(f"Cleared {count} expired search entries")
        return count

    def vacuum(self) -> None:
        with self.get_connection() as conn:
            conn.execute("VACUUM")
        logger.info(f"Vacuumed {self.db_path}")


# Process-wide default database
_cache_db: Optional[CacheDatabase] = None


def get_cache_db(db_path: Optional[Path] = None) -> CacheDatabase:
    """Return the shared CacheDatabase, replacing it when a different path is given."""
    global _cache_db
    if _cache_db is None or (db_path is not None and _cache_db.db_path != Path(db_path)):
        _cache_db = CacheDatabase(db_path)
    return _cache_db


def init_cache(db_path: Optional[Path] = None) -> CacheDatabase:
    """Get the shared database with its schema in place."""
    db = get_cache_db(db_path)
    db.init_schema()
    return db


__all__ = [
    "CacheDatabase",
    "get_cache_db",
    "init_cache",
    "utc_isoformat",
    "DEFAULT_DB_NAME",
    "SCHEMA_VERSION",
]
