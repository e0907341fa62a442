"""Bounded in-process cache tier with TTL and LRU batch eviction.

This tier is a pure optimization: every operation logs and degrades to a
no-op instead of raising, so a broken or unavailable backing store never
changes the result of a search.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, MutableMapping, Optional

from cache.keys import paper_cache_key, search_cache_key
from models.paper import Paper
from models.search import SearchCacheEntry
from utils.config import Config

logger = logging.getLogger(__name__)

# Share of entries removed by one eviction sweep
EVICTION_FRACTION = 0.2


@dataclass
class CacheEnvelope:
    """Wrapper stored for every cached value."""

    data: Any
    last_access: float
    expires_at: float
    size: int

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    total_size_bytes: int
    hit_rate: float

    def to_dict(self) -> dict:
        return {
            "total_entries": self.total_entries,
            "total_size_bytes": self.total_size_bytes,
            "hit_rate": round(self.hit_rate, 3),
        }


def _serialized_size(value: Any) -> int:
    payload = value.to_dict() if hasattr(value, "to_dict") else value
    return len(json.dumps(payload, default=str).encode("utf-8"))


class EphemeralCache:
    """Process-local key/value cache bounded by entry count and total size."""

    def __init__(
        self,
        max_entries: int = Config.EPHEMERAL_MAX_ENTRIES,
        max_size_bytes: int = Config.EPHEMERAL_MAX_BYTES,
        default_ttl: float = Config.EPHEMERAL_TTL_SECONDS,
        store: Optional[MutableMapping[str, CacheEnvelope]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize ephemeral cache.

        Args:
            max_entries: Entry count that triggers an eviction sweep
            max_size_bytes: Total serialized size that triggers a sweep
            default_ttl: TTL in seconds when set() is given none
            store: Backing mapping, a plain dict when not provided
            clock: Time source in epoch seconds
        """
        self.max_entries = max_entries
        self.max_size_bytes = max_size_bytes
        self.default_ttl = default_ttl
        self._store: MutableMapping[str, CacheEnvelope] = store if store is not None else {}
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired.

        A hit refreshes the entry's recency and changes nothing else.
        """
        try:
            envelope = self._store.get(key)
            if envelope is None:
                self._misses += 1
                return None

            now = self._clock()
            if envelope.is_expired(now):
                del self._store[key]
                self._misses += 1
                return None

            # Move to the end so insertion order tracks recency on timestamp ties
            del self._store[key]
            envelope.last_access = now
            self._store[key] = envelope
            self._hits += 1
            return envelope.data
        except Exception as e:
            logger.warning(f"Ephemeral cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        try:
            size = _serialized_size(value)
            if size > self.max_size_bytes:
                logger.warning(
                    f"Ephemeral cache skipped {key}: {size} bytes exceeds the {self.max_size_bytes} byte bound"
                )
                return

            now = self._clock()
            ttl = self.default_ttl if ttl is None else ttl
            self._store.pop(key, None)
            self._store[key] = CacheEnvelope(
                data=value,
                last_access=now,
                expires_at=now + ttl,
                size=size,
            )
            self._evict_if_needed()
        except Exception as e:
            logger.warning(f"Ephemeral cache set error for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self._store.pop(key, None)
        except Exception as e:
            logger.warning(f"Ephemeral cache delete error for {key}: {e}")

    def clear(self, pattern: Optional[str] = None) -> int:
        """Remove all entries, or only those whose key matches ``pattern``.

        Args:
            pattern: Regular expression searched in each key

        Returns:
            Number of entries removed
        """
        try:
            if pattern is None:
                count = len(self._store)
                self._store.clear()
                return count

            regex = re.compile(pattern)
            matching = [key for key in list(self._store.keys()) if regex.search(key)]
            for key in matching:
                del self._store[key]
            return len(matching)
        except Exception as e:
            logger.warning(f"Ephemeral cache clear error: {e}")
            return 0

    def invalidate_expired(self) -> int:
        """Eagerly remove every expired entry. Returns the number removed."""
        try:
            now = self._clock()
            expired = [key for key, env in list(self._store.items()) if env.is_expired(now)]
            for key in expired:
                del self._store[key]
            if expired:
                logger.debug(f"Invalidated {len(expired)} expired ephemeral entries")
            return len(expired)
        except Exception as e:
            logger.warning(f"Ephemeral cache invalidate error: {e}")
            return 0

    def stats(self) -> CacheStats:
        try:
            now = self._clock()
            live = [env for env in self._store.values() if not env.is_expired(now)]
            lookups = self._hits + self._misses
            return CacheStats(
                total_entries=len(live),
                total_size_bytes=sum(env.size for env in live),
                hit_rate=self._hits / lookups if lookups else 0.0,
            )
        except Exception as e:
            logger.warning(f"Ephemeral cache stats error: {e}")
            return CacheStats(total_entries=0, total_size_bytes=0, hit_rate=0.0)

    def __contains__(self, key: str) -> bool:
        try:
            envelope = self._store.get(key)
            return envelope is not None and not envelope.is_expired(self._clock())
        except Exception:
            return False

    # Typed accessors

    def get_paper(self, paper_id: str) -> Optional[Paper]:
        value = self.get(paper_cache_key(paper_id))
        return value if isinstance(value, Paper) else None

    def set_paper(self, paper: Paper, ttl: Optional[float] = None) -> None:
        self.set(paper_cache_key(paper.paper_id), paper, ttl)

    def get_search_result(self, query_key: str) -> Optional[SearchCacheEntry]:
        value = self.get(search_cache_key(query_key))
        return value if isinstance(value, SearchCacheEntry) else None

    def set_search_result(self, entry: SearchCacheEntry, ttl: Optional[float] = None) -> None:
        self.set(search_cache_key(entry.key), entry, ttl)

    def _evict_if_needed(self) -> None:
        """Drop the least recently used fifth of entries when over a bound."""
        total_size = sum(env.size for env in self._store.values())
        entry_count = len(self._store)
        if entry_count <= self.max_entries and total_size <= self.max_size_bytes:
            return

        by_recency = sorted(self._store.items(), key=lambda item: item[1].last_access)
        remove_count = max(1, int(entry_count * EVICTION_FRACTION))
        for key, _ in by_recency[:remove_count]:
            del self._store[key]

        logger.debug(
            f"Evicted {remove_count} ephemeral entries "
            f"(entries={entry_count}, bytes={total_size})"
        )


__all__ = ["EphemeralCache", "CacheEnvelope", "CacheStats", "EVICTION_FRACTION"]
