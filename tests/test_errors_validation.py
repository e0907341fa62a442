#!/usr/bin/env python
"""Tests for error classification, input validation and the data models.

Run with: pytest tests/test_errors_validation.py -v
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# === Test 1: Error classification ===

def test_service_errors_classify_by_type():
    from utils.errors import (
        DurableCacheError,
        ErrorType,
        NotFoundError,
        RateLimitError,
        RequestRejectedError,
        RetryableServiceError,
        UnclassifiedError,
        ValidationError,
        classify_error,
    )

    assert classify_error(ValidationError("x")) is ErrorType.VALIDATION
    assert classify_error(RequestRejectedError("x", status=400)) is ErrorType.VALIDATION
    assert classify_error(NotFoundError("x")) is ErrorType.VALIDATION
    assert classify_error(RateLimitError()) is ErrorType.RATE_LIMITED
    assert classify_error(RetryableServiceError("x")) is ErrorType.RETRYABLE
    assert classify_error(UnclassifiedError("x")) is ErrorType.UNCLASSIFIED
    assert classify_error(DurableCacheError("x")) is ErrorType.UNCLASSIFIED


def test_builtin_errors_classified():
    from utils.errors import ErrorType, classify_error

    assert classify_error(asyncio.TimeoutError()) is ErrorType.RETRYABLE
    assert classify_error(ConnectionResetError()) is ErrorType.RETRYABLE
    assert classify_error(RuntimeError("429 Too Many Requests")) is ErrorType.RATE_LIMITED
    assert classify_error(RuntimeError("network unreachable")) is ErrorType.RETRYABLE
    assert classify_error(RuntimeError("something odd")) is ErrorType.UNCLASSIFIED


def test_retry_predicates():
    from utils.errors import RateLimitError, ValidationError, is_rate_limit_error, is_retryable_error

    assert is_rate_limit_error(RateLimitError())
    assert not is_retryable_error(RateLimitError())
    assert not is_retryable_error(ValidationError("x"))
    assert is_retryable_error(RuntimeError("something odd"))


def test_error_to_dict():
    from utils.errors import ValidationError

    error = ValidationError("Query cannot be empty", field="query")
    data = error.to_dict()
    assert data["type"] == "validation"
    assert data["field"] == "query"
    assert str(error) == "[validation] Query cannot be empty"


# === Test 2: Query validation ===

def test_validate_search_query_strips():
    from utils.validation import validate_search_query

    assert validate_search_query("  neural networks ") == "neural networks"


@pytest.mark.parametrize("query", [None, "", "   ", 42, "x" * 501, "a{b}", "c\\d", "[x]"])
def test_validate_search_query_rejects(query):
    from utils.errors import ValidationError
    from utils.validation import validate_search_query

    with pytest.raises(ValidationError) as exc_info:
        validate_search_query(query)
    assert exc_info.value.field == "query"


def test_validate_search_query_max_length_allowed():
    from utils.validation import MAX_QUERY_LENGTH, validate_search_query

    assert len(validate_search_query("x" * MAX_QUERY_LENGTH)) == MAX_QUERY_LENGTH


# === Test 3: Limit and year validation ===

def test_validate_limit():
    from utils.errors import ValidationError
    from utils.validation import DEFAULT_LIMIT, validate_limit

    assert validate_limit(None) == DEFAULT_LIMIT
    assert validate_limit(25) == 25
    assert validate_limit(100) == 100
    for bad in (0, 101, True, "5"):
        with pytest.raises(ValidationError):
            validate_limit(bad)


def test_validate_year():
    from utils.errors import ValidationError
    from utils.validation import validate_year

    assert validate_year(None) is None
    assert validate_year("2020") == 2020
    with pytest.raises(ValidationError):
        validate_year(1899)
    with pytest.raises(ValidationError):
        validate_year(datetime.now().year + 2)
    with pytest.raises(ValidationError):
        validate_year("abc")


# === Test 4: Models ===

def test_clean_year():
    from models.paper import clean_year

    assert clean_year(2017) == 2017
    assert clean_year("2017-06-12") == 2017
    assert clean_year(1850) is None
    assert clean_year(datetime.now().year + 5) is None
    assert clean_year("unknown") is None
    assert clean_year(None) is None


def test_paper_round_trip():
    from models.paper import Author, Paper

    paper = Paper(
        paper_id="W1",
        title="T",
        year=2020,
        authors=[Author(author_id="A1", name="N")],
        concepts=[{"id": "C1", "name": "Biology"}],
    )
    assert Paper.from_dict(paper.to_dict()) == paper


def test_author_accepts_camel_case_id():
    from models.paper import Author

    assert Author.from_dict({"authorId": "42", "name": "X"}).author_id == "42"


def test_search_entry_requires_expiry_after_update():
    from models.search import SearchCacheEntry

    now = datetime.now(timezone.utc)
    with pytest.raises(ValueError):
        SearchCacheEntry(
            key="k", query="q", results=[], total_requested=10,
            successful_count=0, rate_limited_count=0,
            updated_at=now, expires_at=now,
        )


def test_search_entry_expiry():
    from models.search import SearchCacheEntry

    now = datetime.now(timezone.utc)
    entry = SearchCacheEntry(
        key="k", query="q", results=[], total_requested=10,
        successful_count=0, rate_limited_count=0,
        updated_at=now, expires_at=now + timedelta(seconds=60),
    )
    assert not entry.is_expired(now)
    assert entry.is_expired(now + timedelta(seconds=61))
    assert entry.remaining_seconds(now) == 60
    assert SearchCacheEntry.from_dict(entry.to_dict()) == entry


def test_filters_canonical_form():
    from models.search import SearchFilters

    filters = SearchFilters(types=["review", "article"], min_citations=0)
    assert filters.to_dict() == {"types": ["article", "review"]}
    assert SearchFilters().is_empty()
    assert SearchFilters.from_dict({}) is None
    assert SearchFilters.from_dict(filters.to_dict()) == SearchFilters(types=["article", "review"])


def test_filters_to_openalex():
    from models.search import SearchFilters

    assert SearchFilters(year_min=2020).to_openalex() == {"publication_year": ">2019"}
    assert SearchFilters(year_max=2010).to_openalex() == {"publication_year": "<2011"}
    assert SearchFilters(
        year_min=2018,
        year_max=2022,
        types=["article", "review"],
        open_access=True,
        min_citations=100,
        topics=["C41008148"],
    ).to_openalex() == {
        "publication_year": "2018-2022",
        "type": "article|review",
        "is_oa": "true",
        "cited_by_count": ">100",
        "concepts.id": "C41008148",
    }


def test_cache_result_helpers():
    from models.paper import Paper
    from models.search import CacheResult

    papers = [Paper(paper_id=f"W{i}", title="t") for i in range(4)]
    result = CacheResult(successful=papers, from_cache=papers[:1], rate_limited=1, total_requested=5)
    assert result.cache_hit_rate == 0.2
    assert not result.failed
    assert result.to_dict()["from_cache"] == ["W0"]

    assert CacheResult(total_requested=0).cache_hit_rate == 0.0
    assert CacheResult(error="boom").failed
