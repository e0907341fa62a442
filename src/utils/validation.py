"""Input validation for search requests."""

import re
from datetime import datetime
from typing import Any, Optional

from utils.errors import ValidationError

MAX_QUERY_LENGTH = 500
DEFAULT_LIMIT = 10

_INVALID_QUERY_CHARS = re.compile(r"[<>{}\[\]\\]")


def validate_search_query(query: Any) -> str:
    """Check a search query and return it stripped.

    Raises:
        ValidationError: If the query is missing, blank, too long or
            contains characters the upstream rejects
    """
    if not query or not isinstance(query, str):
        raise ValidationError("Query is required and must be a string", field="query")

    query = query.strip()
    if not query:
        raise ValidationError("Query cannot be empty", field="query")

    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationError(
            "Query is too long. Please use a shorter search term.", field="query"
        )

    if _INVALID_QUERY_CHARS.search(query):
        raise ValidationError("Query contains invalid characters", field="query")

    return query


def validate_limit(limit: Any, maximum: int = 100) -> int:
    """Return a usable result limit, DEFAULT_LIMIT when none is given."""
    if limit is None:
        return DEFAULT_LIMIT

    if isinstance(limit, bool) or not isinstance(limit, (int, float)):
        raise ValidationError("Limit must be a number", field="limit")

    if limit < 1:
        raise ValidationError("Limit must be at least 1", field="limit")

    if limit > maximum:
        raise ValidationError(f"Limit cannot exceed {maximum}", field="limit")

    return int(limit)


def validate_year(year: Any) -> Optional[int]:
    if year is None:
        return None

    try:
        year_num = int(str(year))
    except ValueError:
        raise ValidationError("Year must be a valid number", field="year")

    current_year = datetime.now().year
    if year_num < 1900 or year_num > current_year + 1:
        raise ValidationError(
            f"Year must be between 1900 and {current_year + 1}", field="year"
        )

    return year_num


__all__ = [
    "MAX_QUERY_LENGTH",
    "DEFAULT_LIMIT",
    "validate_search_query",
    "validate_limit",
    "validate_year",
]
