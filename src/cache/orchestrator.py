"""Fetch orchestration across the ephemeral tier, the durable tier and upstream.

A search is answered from the first tier holding an unexpired entry for its
key. On a full miss the upstream is called once (rate limited, retried),
each returned paper is resolved against the paper caches, and the fresh
snapshot is written back to both tiers.

Upstream failures never escape as exceptions: they are reported through
CacheResult. Only invalid input raises.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from cache.database import get_cache_db
from cache.durable import DurableCache, SQLiteDurableCache
from cache.ephemeral import EphemeralCache
from cache.keys import derive_query_key
from models.paper import Paper
from models.search import CacheResult, SearchCacheEntry, SearchFilters
from services.upstream import UpstreamClient
from utils.config import Config
from utils.errors import (
    DurableCacheError,
    ErrorType,
    ValidationError,
    classify_error,
)
from utils.rate_limiter import RateLimiter
from utils.retry import RetryPolicy
from utils.validation import validate_limit, validate_search_query

logger = logging.getLogger(__name__)

# Pause between queries of a batch
BATCH_DELAY = 0.5

HIGHLY_CITED_THRESHOLD = 100
RECENT_YEARS = 5
CITATION_SORT = "cited_by_count:desc"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FetchOrchestrator:
    """Serves searches through the cache tiers, fetching upstream on a miss."""

    def __init__(
        self,
        upstream: UpstreamClient,
        ephemeral: EphemeralCache,
        durable: DurableCache,
        rate_limiter: RateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        safe_max_limit: int = Config.SAFE_MAX_LIMIT,
        max_limit: int = Config.MAX_QUERY_LIMIT,
        search_ttl: float = Config.SEARCH_TTL_SECONDS,
        hydrate_missing: bool = Config.HYDRATE_MISSING_PAPERS,
        sort: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """Initialize orchestrator.

        Args:
            upstream: Provider client
            ephemeral: In-process cache tier
            durable: Shared durable cache tier
            rate_limiter: Limiter shared by every caller of ``upstream``
            retry_policy: Retry policy for upstream calls
            safe_max_limit: Largest page size ever requested upstream
            max_limit: Largest limit a caller may ask for
            search_ttl: Lifetime in seconds of a cached search
            hydrate_missing: Fetch uncached papers individually by ID
                instead of using the search record
            sort: Default upstream sort expression
            clock: UTC time source
            sleep: Async sleep used between batch queries
        """
        if search_ttl <= 0:
            raise ValueError(f"search_ttl must be positive, got {search_ttl}")
        self.upstream = upstream
        self.ephemeral = ephemeral
        self.durable = durable
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=Config.MAX_RETRIES, base_delay=Config.RETRY_BASE_DELAY
        )
        self.safe_max_limit = safe_max_limit
        self.max_limit = max_limit
        self.search_ttl = search_ttl
        self.hydrate_missing = hydrate_missing
        self.sort = sort
        self._clock = clock
        self._sleep = sleep or asyncio.sleep

    async def search_with_caching(
        self,
        query: str,
        limit: int = 10,
        filters: Optional[SearchFilters] = None,
    ) -> CacheResult:
        """Search with multi-tier caching.

        Args:
            query: Search text
            limit: Number of results wanted
            filters: Optional filter set, part of the cache key

        Returns:
            CacheResult; ``error`` is set if the upstream failed for a
            reason other than throttling

        Raises:
            ValidationError: If query or limit is invalid
        """
        query = validate_search_query(query)
        limit = validate_limit(limit, maximum=self.max_limit)
        if filters is not None and filters.is_empty():
            filters = None

        key = derive_query_key(query, limit, filters)
        now = self._clock()

        # 1. Ephemeral tier
        entry = self.ephemeral.get_search_result(key)
        if entry is not None and not entry.is_expired(now):
            logger.debug(f"Ephemeral hit for query: {query[:50]}")
            return self._result_from_entry(entry)

        # 2. Durable tier
        entry = await self._durable_lookup(key)
        if entry is not None and not entry.is_expired(now):
            logger.debug(f"Durable hit for query: {query[:50]}")
            self.ephemeral.set_search_result(entry, ttl=entry.remaining_seconds(now))
            return self._result_from_entry(entry)

        # 3. Upstream
        return await self._fetch_from_upstream(query, limit, key, filters)

    def _result_from_entry(self, entry: SearchCacheEntry) -> CacheResult:
        return CacheResult(
            successful=list(entry.results),
            from_cache=list(entry.results),
            rate_limited=entry.rate_limited_count,
            total_requested=entry.total_requested,
        )

    async def _durable_lookup(self, key: str) -> Optional[SearchCacheEntry]:
        try:
            return await self.durable.get_by_key(key)
        except DurableCacheError as e:
            logger.warning(f"Durable cache unavailable, falling through to upstream: {e}")
            return None

    async def _call_upstream(self, operation: Callable[[], Awaitable[dict]]) -> dict:
        await self.rate_limiter.wait_for_next_request()
        return await self.retry_policy.execute(operation)

    async def _fetch_from_upstream(
        self,
        query: str,
        limit: int,
        key: str,
        filters: Optional[SearchFilters],
    ) -> CacheResult:
        safe_limit = min(limit, self.safe_max_limit)
        sort = filters.sort_by if filters is not None and filters.sort_by else self.sort

        try:
            response = await self._call_upstream(
                lambda: self.upstream.search(query, limit=safe_limit, sort=sort, filters=filters)
            )
        except Exception as e:
            if classify_error(e) is ErrorType.RATE_LIMITED:
                logger.warning(f"Rate limited searching '{query[:50]}'")
                return CacheResult(rate_limited=limit, total_requested=limit)
            logger.error(f"Upstream search failed for '{query[:50]}': {e}")
            return CacheResult(total_requested=limit, error=str(e))

        raw_items = response.get("results") or []
        if not raw_items:
            logger.warning(f"No results returned for '{query[:50]}'")
            return CacheResult(total_requested=limit)

        results: List[Paper] = []
        from_cache: List[Paper] = []
        rate_limited = 0

        for raw in raw_items:
            try:
                paper = self.upstream.to_paper(raw)
                if not paper.paper_id:
                    logger.warning("Upstream item without an ID, skipping")
                    continue

                cached = await self._cached_paper(paper.paper_id)
                if cached is not None:
                    results.append(cached)
                    from_cache.append(cached)
                    continue

                if self.hydrate_missing:
                    paper = await self._hydrate(paper.paper_id)

                results.append(paper)
                await self._write_paper(paper)
            except Exception as e:
                if classify_error(e) is ErrorType.RATE_LIMITED:
                    rate_limited += 1
                    logger.warning(f"Rate limited resolving a paper for '{query[:50]}'")
                else:
                    logger.warning(f"Skipping paper for '{query[:50]}': {e}")

        now = self._clock()
        entry = SearchCacheEntry(
            key=key,
            query=query,
            results=results,
            total_requested=limit,
            successful_count=len(results),
            rate_limited_count=rate_limited,
            updated_at=now,
            expires_at=now + timedelta(seconds=self.search_ttl),
            filters=filters,
        )
        await self._write_search(entry)

        logger.info(
            f"Fetched '{query[:50]}': {len(results)} papers "
            f"({len(from_cache)} cached, {rate_limited} rate limited)"
        )
        return CacheResult(
            successful=results,
            from_cache=from_cache,
            rate_limited=rate_limited,
            total_requested=limit,
        )

    async def _cached_paper(self, paper_id: str) -> Optional[Paper]:
        paper = self.ephemeral.get_paper(paper_id)
        if paper is not None:
            return paper

        try:
            paper = await self.durable.get_paper_by_id(paper_id)
        except DurableCacheError as e:
            logger.warning(f"Durable paper lookup failed for {paper_id}: {e}")
            return None

        if paper is not None:
            self.ephemeral.set_paper(paper)
        return paper

    async def _hydrate(self, paper_id: str) -> Paper:
        raw = await self._call_upstream(lambda: self.upstream.get_by_id(paper_id))
        return self.upstream.to_paper(raw)

    async def _write_paper(self, paper: Paper) -> None:
        try:
            await self.durable.upsert_paper(paper)
        except DurableCacheError as e:
            logger.warning(f"Failed to persist paper {paper.paper_id}: {e}")
        self.ephemeral.set_paper(paper)

    async def _write_search(self, entry: SearchCacheEntry) -> None:
        try:
            await self.durable.upsert(entry)
        except DurableCacheError as e:
            logger.warning(f"Failed to persist search {entry.key[:12]}: {e}")
        self.ephemeral.set_search_result(entry, ttl=self.search_ttl)

    # Cache management

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        """Clear the ephemeral tier, or only keys matching ``pattern``.

        The durable tier is shared and is left alone.
        """
        count = self.ephemeral.clear(pattern)
        logger.info(f"Cleared {count} ephemeral cache entries")
        return count

    def get_cache_stats(self) -> dict:
        return self.ephemeral.stats().to_dict()

    # Batch and preset searches

    async def batch_search(
        self,
        queries: List[str],
        limit: int = 10,
        delay: float = BATCH_DELAY,
    ) -> List[CacheResult]:
        """Run searches one after another, pausing ``delay`` seconds between them.

        Invalid queries yield an empty result carrying the validation
        message instead of aborting the batch.
        """
        results = []
        for i, query in enumerate(queries):
            if i > 0 and delay > 0:
                await self._sleep(delay)
            try:
                results.append(await self.search_with_caching(query, limit))
            except ValidationError as e:
                logger.warning(f"Skipping invalid batch query {query!r}: {e.message}")
                results.append(CacheResult(total_requested=0, error=e.message))
        return results

    async def search_recent_papers(self, query: str, limit: int = 10) -> CacheResult:
        """Articles from the last few years, most cited first."""
        current_year = self._clock().year
        filters = SearchFilters(
            year_min=current_year - RECENT_YEARS + 1,
            year_max=current_year,
            types=["article"],
            sort_by=CITATION_SORT,
        )
        return await self.search_with_caching(query, limit, filters)

    async def search_open_access_papers(self, query: str, limit: int = 10) -> CacheResult:
        filters = SearchFilters(open_access=True, sort_by=CITATION_SORT)
        return await self.search_with_caching(query, limit, filters)

    async def search_highly_cited_papers(self, query: str, limit: int = 10) -> CacheResult:
        filters = SearchFilters(min_citations=HIGHLY_CITED_THRESHOLD, sort_by=CITATION_SORT)
        return await self.search_with_caching(query, limit, filters)


def create_upstream(provider: Optional[str] = None) -> UpstreamClient:
    """Build the client for a provider name (``openalex`` or ``semantic_scholar``)."""
    provider = provider or Config.PROVIDER
    if provider == "openalex":
        from services.openalex import OpenAlexClient
        return OpenAlexClient()
    if provider == "semantic_scholar":
        from services.semantic_scholar import SemanticScholarClient
        return SemanticScholarClient()
    raise ValidationError(f"Unknown provider: {provider}", field="provider")


def create_orchestrator(
    provider: Optional[str] = None,
    db_path: Optional[Path] = None,
    **kwargs,
) -> FetchOrchestrator:
    """Wire an orchestrator from configuration.

    Args:
        provider: Upstream provider name, Config.PROVIDER by default
        db_path: SQLite path for the durable tier
        **kwargs: Passed through to FetchOrchestrator
    """
    provider = provider or Config.PROVIDER
    upstream = create_upstream(provider)
    return FetchOrchestrator(
        upstream=upstream,
        ephemeral=EphemeralCache(),
        durable=SQLiteDurableCache(get_cache_db(db_path)),
        rate_limiter=RateLimiter(Config.rate_interval_for(provider)),
        **kwargs,
    )


__all__ = [
    "FetchOrchestrator",
    "create_orchestrator",
    "create_upstream",
    "BATCH_DELAY",
]
