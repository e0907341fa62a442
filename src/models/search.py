"""Search-level models: filter sets, cached search entries and call results."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from models.paper import Paper


@dataclass(frozen=True)
class SearchFilters:
    """Optional filters narrowing an upstream search.

    Unset fields do not take part in the search or in the cache key.
    """

    year_min: Optional[int] = None
    year_max: Optional[int] = None
    types: List[str] = field(default_factory=list)
    open_access: bool = False
    min_citations: int = 0
    sort_by: Optional[str] = None
    topics: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        """Canonical form: only set fields, list values sorted."""
        data: Dict[str, Any] = {}
        if self.year_min is not None:
            data["year_min"] = self.year_min
        if self.year_max is not None:
            data["year_max"] = self.year_max
        if self.types:
            data["types"] = sorted(self.types)
        if self.open_access:
            data["open_access"] = True
        if self.min_citations > 0:
            data["min_citations"] = self.min_citations
        if self.sort_by:
            data["sort_by"] = self.sort_by
        if self.topics:
            data["topics"] = sorted(self.topics)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SearchFilters"]:
        if not data:
            return None
        return cls(
            year_min=data.get("year_min"),
            year_max=data.get("year_max"),
            types=list(data.get("types") or []),
            open_access=bool(data.get("open_access", False)),
            min_citations=int(data.get("min_citations") or 0),
            sort_by=data.get("sort_by"),
            topics=list(data.get("topics") or []),
        )

    def to_openalex(self) -> Dict[str, str]:
        """Convert to OpenAlex ``filter`` parameter entries."""
        filters: Dict[str, str] = {}

        if self.year_min and self.year_max:
            filters["publication_year"] = f"{self.year_min}-{self.year_max}"
        elif self.year_min:
            filters["publication_year"] = f">{self.year_min - 1}"
        elif self.year_max:
            filters["publication_year"] = f"<{self.year_max + 1}"

        if self.types:
            filters["type"] = "|".join(self.types)

        if self.open_access:
            filters["is_oa"] = "true"

        if self.min_citations > 0:
            filters["cited_by_count"] = f">{self.min_citations}"

        if self.topics:
            filters["concepts.id"] = "|".join(self.topics)

        return filters


@dataclass(frozen=True)
class SearchCacheEntry:
    """A cached search: an ordered snapshot of Papers for one query key."""

    key: str
    query: str
    results: List[Paper]
    total_requested: int
    successful_count: int
    rate_limited_count: int
    updated_at: datetime
    expires_at: datetime
    filters: Optional[SearchFilters] = None

    def __post_init__(self):
        if self.expires_at <= self.updated_at:
            raise ValueError(
                f"expires_at ({self.expires_at}) must be after updated_at ({self.updated_at})"
            )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.expires_at

    def remaining_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (self.expires_at - now).total_seconds()

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "query": self.query,
            "results": [paper.to_dict() for paper in self.results],
            "total_requested": self.total_requested,
            "successful_count": self.successful_count,
            "rate_limited_count": self.rate_limited_count,
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "filters": self.filters.to_dict() if self.filters else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchCacheEntry":
        return cls(
            key=data["key"],
            query=data["query"],
            results=[Paper.from_dict(p) for p in data.get("results") or []],
            total_requested=data["total_requested"],
            successful_count=data["successful_count"],
            rate_limited_count=data["rate_limited_count"],
            updated_at=parse_timestamp(data["updated_at"]),
            expires_at=parse_timestamp(data["expires_at"]),
            filters=SearchFilters.from_dict(data.get("filters")),
        )


@dataclass
class CacheResult:
    """Outcome of one orchestrated search.

    ``error`` is set only when the upstream batch call failed for a reason
    other than throttling; an empty ``successful`` list with no error is a
    genuine zero-result search.
    """

    successful: List[Paper] = field(default_factory=list)
    from_cache: List[Paper] = field(default_factory=list)
    rate_limited: int = 0
    total_requested: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def cache_hit_rate(self) -> float:
        if self.total_requested <= 0:
            return 0.0
        return len(self.from_cache) / self.total_requested

    def to_dict(self) -> dict:
        return {
            "successful": [paper.to_dict() for paper in self.successful],
            "from_cache": [paper.paper_id for paper in self.from_cache],
            "rate_limited": self.rate_limited,
            "total_requested": self.total_requested,
            "cache_hit_rate": round(self.cache_hit_rate, 3),
            "error": self.error,
        }


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp, assuming UTC when no offset is present."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = ["SearchFilters", "SearchCacheEntry", "CacheResult", "parse_timestamp"]
