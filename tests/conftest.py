"""Shared fakes and fixtures for ScholarCache tests."""

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cache.ephemeral import EphemeralCache
from cache.orchestrator import FetchOrchestrator
from models.paper import Paper
from models.search import SearchCacheEntry
from utils.errors import DurableCacheError
from utils.rate_limiter import RateLimiter
from utils.retry import RetryPolicy

FIXED_TIMESTAMP = "2024-01-01T00:00:00+00:00"


def raw_item(index: int) -> dict:
    return {"id": f"P{index}", "title": f"Paper {index}"}


class FakeUpstream:
    """In-memory provider that records every call."""

    name = "fake"

    def __init__(self, items: Optional[List[dict]] = None):
        self.items = items if items is not None else [raw_item(i) for i in range(10)]
        self.search_calls: List[dict] = []
        self.get_calls: List[str] = []
        # Exceptions raised by successive search() calls, then success
        self.search_errors: List[Exception] = []
        # paper_id -> exception raised by get_by_id()
        self.get_errors: Dict[str, Exception] = {}

    async def search(self, query, limit, sort=None, filters=None):
        self.search_calls.append(
            {"query": query, "limit": limit, "sort": sort, "filters": filters}
        )
        if self.search_errors:
            raise self.search_errors.pop(0)
        results = self.items[:limit]
        return {"meta": {"count": len(self.items)}, "results": results}

    async def get_by_id(self, paper_id):
        self.get_calls.append(paper_id)
        if paper_id in self.get_errors:
            raise self.get_errors[paper_id]
        return {"id": paper_id, "title": f"Hydrated {paper_id}"}

    def to_paper(self, raw):
        return Paper(
            paper_id=raw.get("id") or "",
            title=raw.get("title", ""),
            created_at=FIXED_TIMESTAMP,
            updated_at=FIXED_TIMESTAMP,
        )


class InMemoryDurable:
    """DurableCache backed by dicts, optionally failing every call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.entries: Dict[str, SearchCacheEntry] = {}
        self.papers: Dict[str, Paper] = {}

    def _check(self):
        if self.fail:
            raise DurableCacheError("durable store unavailable")

    async def get_by_key(self, key):
        self._check()
        return self.entries.get(key)

    async def upsert(self, entry):
        self._check()
        self.entries[entry.key] = entry

    async def get_paper_by_id(self, paper_id):
        self._check()
        return self.papers.get(paper_id)

    async def upsert_paper(self, paper):
        self._check()
        self.papers[paper.paper_id] = paper


class RecordingSleep:
    """Async sleep replacement that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def durable():
    return InMemoryDurable()


@pytest.fixture
def ephemeral():
    return EphemeralCache(max_entries=1000, max_size_bytes=10 * 1024 * 1024, default_ttl=3600)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_orchestrator(upstream, durable, ephemeral, recording_sleep):
    """Build a FetchOrchestrator with no real waiting."""

    def _make(**kwargs):
        options = {
            "upstream": upstream,
            "ephemeral": ephemeral,
            "durable": durable,
            "rate_limiter": RateLimiter(0),
            "retry_policy": RetryPolicy(max_retries=3, base_delay=0.01, sleep=recording_sleep),
            "safe_max_limit": 25,
            "max_limit": 100,
            "search_ttl": 3600,
            "hydrate_missing": False,
            "sleep": recording_sleep,
        }
        options.update(kwargs)
        return FetchOrchestrator(**options)

    return _make
