"""Paper model shared by both cache tiers and the upstream clients."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Author:
    """An author reference as returned by the upstream provider."""

    author_id: str
    name: str

    def to_dict(self) -> dict:
        return {"author_id": self.author_id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Author":
        return cls(
            author_id=str(data.get("author_id") or data.get("authorId") or ""),
            name=data.get("name", ""),
        )


@dataclass(frozen=True)
class Paper:
    """One bibliographic record, keyed by a stable ``paper_id``.

    Papers are value records: a fresh upstream fetch replaces the whole
    record, and a cached copy is never modified in place.
    """

    paper_id: str
    title: str
    abstract: Optional[str] = None
    year: Optional[int] = None
    venue: Optional[str] = None
    citation_count: Optional[int] = None
    authors: List[Author] = field(default_factory=list)
    url: Optional[str] = None
    doi: Optional[str] = None
    pdf_url: Optional[str] = None
    is_open_access: Optional[bool] = None
    type: Optional[str] = None
    concepts: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "paper_id": self.paper_id,
            "title": self.title,
            "abstract": self.abstract,
            "year": self.year,
            "venue": self.venue,
            "citation_count": self.citation_count,
            "authors": [author.to_dict() for author in self.authors],
            "url": self.url,
            "doi": self.doi,
            "pdf_url": self.pdf_url,
            "is_open_access": self.is_open_access,
            "type": self.type,
            "concepts": list(self.concepts),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Paper":
        """Create a Paper from its dictionary representation."""
        return cls(
            paper_id=data["paper_id"],
            title=data.get("title") or "",
            abstract=data.get("abstract"),
            year=data.get("year"),
            venue=data.get("venue"),
            citation_count=data.get("citation_count"),
            authors=[Author.from_dict(a) for a in (data.get("authors") or [])],
            url=data.get("url"),
            doi=data.get("doi"),
            pdf_url=data.get("pdf_url"),
            is_open_access=data.get("is_open_access"),
            type=data.get("type"),
            concepts=list(data.get("concepts") or []),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


def clean_year(value: Any) -> Optional[int]:
    """Return ``value`` as a publication year, or None if it is implausible.

    Accepted range is 1900 up to next year.
    """
    if value is None:
        return None
    try:
        year = int(str(value).strip()[:4])
    except (TypeError, ValueError):
        return None
    if 1900 <= year <= datetime.now().year + 1:
        return year
    return None


__all__ = ["Author", "Paper", "clean_year"]
