"""Durable paper record cache.

Papers carry no TTL here: once stored, a record is reused until a fresh
upstream fetch replaces it.
"""

import json
import logging
from typing import Any, Optional

import aiosqlite

from cache.database import CacheDatabase, get_cache_db
from models.paper import Paper

logger = logging.getLogger(__name__)

_UPSERT_SQL = """
    INSERT INTO papers (
        paper_id, title, year, venue, citation_count, doi, data,
        created_at, updated_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(paper_id) DO UPDATE SET
        title = excluded.title,
        year = excluded.year,
        venue = excluded.venue,
        citation_count = excluded.citation_count,
        doi = excluded.doi,
        data = excluded.data,
        created_at = COALESCE(papers.created_at, excluded.created_at),
        updated_at = excluded.updated_at
"""


class PaperCache:
    """Cache for paper records."""

    def __init__(self, db: Optional[CacheDatabase] = None):
        """Initialize paper cache.

        Args:
            db: CacheDatabase instance. Uses global instance if not provided.
        """
        self.db = db or get_cache_db()

    def _row_to_paper(self, row: Any) -> Paper:
        data = json.loads(row["data"])
        if not isinstance(data, dict):
            raise ValueError(f"Malformed paper record: {row['data']!r}")
        # Row timestamps win over the JSON copy; upserts keep the first created_at
        data["created_at"] = row["created_at"]
        data["updated_at"] = row["updated_at"]
        return Paper.from_dict(data)

    def _paper_params(self, paper: Paper) -> tuple:
        return (
            paper.paper_id,
            paper.title,
            paper.year,
            paper.venue,
            paper.citation_count,
            paper.doi,
            json.dumps(paper.to_dict(), sort_keys=True),
            paper.created_at,
            paper.updated_at,
        )

    # Synchronous methods

    def get(self, paper_id: str) -> Optional[Paper]:
        """Get paper by ID (sync).

        Args:
            paper_id: Paper identifier

        Returns:
            Paper or None if not found
        """
        self.db.init_schema()

        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "SELECT data, created_at, updated_at FROM papers WHERE paper_id = ?",
                (paper_id,)
            )
            row = cursor.fetchone()
        return self._row_to_paper(row) if row else None

    def count(self) -> int:
        self.db.init_schema()
        with self.db.get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM papers").fetchone()[0]

    # Asynchronous methods

    async def get_async(self, paper_id: str) -> Optional[Paper]:
        """Get paper by ID (async).

        Args:
            paper_id: Paper identifier

        Returns:
            Paper or None
        """
        await self.db.init_schema_async()

        async with aiosqlite.connect(self.db.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT data, created_at, updated_at FROM papers WHERE paper_id = ?",
                (paper_id,)
            )
            row = await cursor.fetchone()
        return self._row_to_paper(row) if row else None

    async def save_async(self, paper: Paper) -> str:
        """Upsert a paper as a whole record (async).

        Args:
            paper: Paper to store

        Returns:
            Paper ID
        """
        await self.db.init_schema_async()

        async with aiosqlite.connect(self.db.db_path) as db:
            await db.execute(_UPSERT_SQL, self._paper_params(paper))
            await db.commit()

        logger.debug(f"Cached paper: {paper.paper_id}")
        return paper.paper_id


# Export
__all__ = ["PaperCache"]
