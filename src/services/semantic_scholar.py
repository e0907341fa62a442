"""Semantic Scholar API client.

Responses are normalized to the OpenAlex-style envelope
``{"meta": {"count"}, "results"}`` so the orchestrator handles both
providers the same way.
"""

import logging
from typing import Any, Dict, Optional

from models.paper import Author, Paper, clean_year
from models.search import SearchFilters
from services.upstream import now_isoformat, request_json
from utils.config import Config

logger = logging.getLogger(__name__)

# API configuration
BASE_URL = "https://api.semanticscholar.org/graph/v1"

# Requesting more fields than this has been seen to time out on large pages
SEARCH_FIELDS = "paperId,title,authors,year,abstract,citationCount,url,venue,publicationDate"
DETAIL_FIELDS = (
    "paperId,title,authors,year,abstract,citationCount,url,venue,publicationDate,"
    "externalIds,openAccessPdf,isOpenAccess,publicationTypes"
)


def _year_param(filters: SearchFilters) -> Optional[str]:
    """Semantic Scholar year filter: ``2020``, ``2020-2024``, ``2020-`` or ``-2024``."""
    if filters.year_min is None and filters.year_max is None:
        return None
    start = str(filters.year_min) if filters.year_min is not None else ""
    end = str(filters.year_max) if filters.year_max is not None else ""
    if start and start == end:
        return start
    return f"{start}-{end}"


class SemanticScholarClient:
    """Async client for the Semantic Scholar Graph API."""

    name = "semantic_scholar"

    def __init__(self, api_key: str = "", timeout: Optional[float] = None):
        self.api_key = api_key or Config.SEMANTIC_SCHOLAR_API_KEY
        self.timeout = timeout or Config.REQUEST_TIMEOUT

    @property
    def headers(self) -> Dict[str, str]:
        # API key is optional, it raises the rate limit
        return {"x-api-key": self.api_key} if self.api_key else {}

    async def search(
        self,
        query: str,
        limit: int,
        sort: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
    ) -> Dict[str, Any]:
        """
        Search for papers on Semantic Scholar.

        Args:
            query: Search query string
            limit: Maximum number of results
            sort: Ignored; relevance search has no sort parameter
            filters: Optional filter set (year range, open access,
                minimum citations, publication types)

        Returns:
            ``{"meta": {"count": int}, "results": [paper, ...]}``
        """
        params: Dict[str, Any] = {
            "query": query,
            "limit": limit,
            "fields": SEARCH_FIELDS,
        }

        if filters is not None:
            year = _year_param(filters)
            if year:
                params["year"] = year
            if filters.open_access:
                params["openAccessPdf"] = ""
            if filters.min_citations > 0:
                params["minCitationCount"] = filters.min_citations
            if filters.types:
                params["publicationTypes"] = ",".join(filters.types)

        result = await request_json(
            f"{BASE_URL}/paper/search", params=params, headers=self.headers, timeout=self.timeout
        )
        papers = result.get("data") or []
        logger.debug(f"Semantic Scholar search '{query[:50]}': {len(papers)} results")
        return {"meta": {"count": result.get("total", len(papers))}, "results": papers}

    async def get_by_id(self, paper_id: str) -> Dict[str, Any]:
        """
        Get detailed information for a specific paper.

        Args:
            paper_id: Semantic Scholar ID, or a prefixed external ID such as
                ``DOI:10.18653/v1/N18-3011`` or ``arXiv:1706.03762``
        """
        return await request_json(
            f"{BASE_URL}/paper/{paper_id}",
            params={"fields": DETAIL_FIELDS},
            headers=self.headers,
            timeout=self.timeout,
        )

    def to_paper(self, raw: Dict[str, Any]) -> Paper:
        """Convert a Semantic Scholar paper into a Paper."""
        external_ids = raw.get("externalIds") or {}
        open_access_pdf = raw.get("openAccessPdf") or {}
        types = raw.get("publicationTypes") or []
        now = now_isoformat()

        return Paper(
            paper_id=raw.get("paperId") or "",
            title=raw.get("title") or "",
            abstract=raw.get("abstract"),
            year=clean_year(raw.get("year")),
            venue=raw.get("venue") or None,
            citation_count=raw.get("citationCount"),
            authors=[Author.from_dict(author) for author in raw.get("authors") or []],
            url=raw.get("url"),
            doi=external_ids.get("DOI") or raw.get("doi"),
            pdf_url=open_access_pdf.get("url"),
            is_open_access=raw.get("isOpenAccess"),
            type=types[0] if types else None,
            created_at=now,
            updated_at=now,
        )


__all__ = ["SemanticScholarClient", "BASE_URL", "SEARCH_FIELDS"]
