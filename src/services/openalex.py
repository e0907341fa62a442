"""OpenAlex API client.

OpenAlex (https://openalex.org) indexes scholarly works with open metadata.
Searches go to /works, single records to /works/{id}. Adding a contact
email via the ``mailto`` parameter routes requests to the polite pool.
"""

import logging
from typing import Any, Dict, List, Optional

from models.paper import Author, Paper, clean_year
from models.search import SearchFilters
from services.upstream import now_isoformat, request_json
from utils.config import Config

logger = logging.getLogger(__name__)

BASE_URL = "https://api.openalex.org"
DEFAULT_SORT = "relevance_score:desc"


def build_filter_string(filters: Dict[str, str]) -> str:
    """Join filter entries as OpenAlex expects: ``key:value,key:value``."""
    return ",".join(f"{key}:{value}" for key, value in filters.items())


def reconstruct_abstract(inverted_index: Optional[Dict[str, List[int]]]) -> Optional[str]:
    """Rebuild abstract text from OpenAlex's word -> positions index."""
    if not inverted_index:
        return None

    positions: Dict[int, str] = {}
    for word, indexes in inverted_index.items():
        for index in indexes:
            positions[index] = word
    return " ".join(positions[i] for i in sorted(positions))


def _short_id(openalex_id: Optional[str]) -> str:
    """'https://openalex.org/W123' -> 'W123'."""
    if not openalex_id:
        return ""
    return openalex_id.rstrip("/").split("/")[-1]


class OpenAlexClient:
    """Async client for the OpenAlex works endpoint."""

    name = "openalex"

    def __init__(self, email: str = "", timeout: Optional[float] = None):
        self.email = email or Config.OPENALEX_EMAIL
        self.timeout = timeout or Config.REQUEST_TIMEOUT

    def _base_params(self) -> Dict[str, Any]:
        return {"mailto": self.email} if self.email else {}

    async def search(
        self,
        query: str,
        limit: int,
        sort: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
        page: int = 1,
    ) -> Dict[str, Any]:
        """Search OpenAlex works.

        Args:
            query: Search text
            limit: Page size (``per_page``)
            sort: OpenAlex sort expression, relevance when not given
            filters: Optional filter set
            page: 1-based page number

        Returns:
            ``{"meta": {"count": int, ...}, "results": [work, ...]}``
        """
        params = self._base_params()
        params.update({
            "search": query,
            "per_page": limit,
            "page": page,
            "sort": sort or (filters.sort_by if filters and filters.sort_by else DEFAULT_SORT),
        })
        if filters is not None:
            filter_map = filters.to_openalex()
            if filter_map:
                params["filter"] = build_filter_string(filter_map)

        data = await request_json(f"{BASE_URL}/works", params=params, timeout=self.timeout)
        meta = data.get("meta") or {}
        results = data.get("results") or []
        logger.debug(
            f"OpenAlex search '{query[:50]}': {len(results)} of {meta.get('count', 0)} results"
        )
        return {"meta": {**meta, "count": meta.get("count", 0)}, "results": results}

    async def get_by_id(self, paper_id: str) -> Dict[str, Any]:
        """Fetch a single work by OpenAlex ID (``W...``), DOI URL, or full ID URL."""
        return await request_json(
            f"{BASE_URL}/works/{paper_id}", params=self._base_params(), timeout=self.timeout
        )

    def to_paper(self, raw: Dict[str, Any]) -> Paper:
        """Convert an OpenAlex work into a Paper."""
        location = raw.get("primary_location") or {}
        source = location.get("source") or {}
        open_access = raw.get("open_access") or {}
        now = now_isoformat()

        authors = []
        for authorship in raw.get("authorships") or []:
            author = authorship.get("author") or {}
            authors.append(Author(
                author_id=_short_id(author.get("id")),
                name=author.get("display_name") or "",
            ))

        concepts = [
            {
                "id": concept.get("id"),
                "name": concept.get("display_name"),
                "level": concept.get("level"),
                "score": concept.get("score"),
            }
            for concept in raw.get("concepts") or []
        ]

        return Paper(
            paper_id=_short_id(raw.get("id")),
            title=raw.get("display_name") or raw.get("title") or "",
            abstract=reconstruct_abstract(raw.get("abstract_inverted_index")),
            year=clean_year(raw.get("publication_year")),
            venue=source.get("display_name"),
            citation_count=raw.get("cited_by_count"),
            authors=authors,
            url=location.get("landing_page_url") or open_access.get("oa_url"),
            doi=raw.get("doi"),
            pdf_url=location.get("pdf_url") or open_access.get("oa_url"),
            is_open_access=open_access.get("is_oa"),
            type=raw.get("type"),
            concepts=concepts,
            created_at=now,
            updated_at=now,
        )


__all__ = ["OpenAlexClient", "BASE_URL", "build_filter_string", "reconstruct_abstract"]
