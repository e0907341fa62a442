"""Cache key derivation.

Keys are SHA-256 digests of the query, the requested limit and, when
present, the canonical form of the filter set. Filtered and unfiltered
searches for the same text therefore never share a key.
"""

import hashlib
import json
from typing import Optional

from models.search import SearchFilters

SEARCH_PREFIX = "search_"
PAPER_PREFIX = "paper_"


def derive_query_key(query: str, limit: int, filters: Optional[SearchFilters] = None) -> str:
    """Create the cache key for a search.

    Args:
        query: Search query
        limit: Number of results requested by the caller
        filters: Optional filter set

    Returns:
        64-character hex digest
    """
    raw = f"{query}_{limit}"
    if filters is not None and not filters.is_empty():
        canonical = json.dumps(filters.to_dict(), sort_keys=True, separators=(",", ":"))
        raw = f"{raw}_{canonical}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def search_cache_key(query_key: str) -> str:
    """Ephemeral-tier slot for a search entry."""
    return f"{SEARCH_PREFIX}{query_key}"


def paper_cache_key(paper_id: str) -> str:
    """Ephemeral-tier slot for a paper."""
    return f"{PAPER_PREFIX}{paper_id}"


__all__ = [
    "SEARCH_PREFIX",
    "PAPER_PREFIX",
    "derive_query_key",
    "search_cache_key",
    "paper_cache_key",
]
