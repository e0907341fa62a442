#!/usr/bin/env python
"""Tests for the OpenAlex and Semantic Scholar clients.

Covers:
- Request parameters (search, paging, sort, filters, mailto, API key)
- HTTP status mapping onto the error taxonomy
- Response normalization and Paper conversion

Run with: pytest tests/test_upstream_clients.py -v
"""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def mock_session(status=200, json_data=None, headers=None, text=""):
    """Build a patched aiohttp.ClientSession returning one canned response."""
    mock_resp = AsyncMock()
    mock_resp.status = status
    mock_resp.headers = headers or {}
    mock_resp.json = AsyncMock(return_value=json_data if json_data is not None else {})
    mock_resp.text = AsyncMock(return_value=text)

    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    session.get = MagicMock(return_value=AsyncMock(
        __aenter__=AsyncMock(return_value=mock_resp),
        __aexit__=AsyncMock(return_value=False),
    ))
    return session


OPENALEX_WORK = {
    "id": "https://openalex.org/W2741809807",
    "doi": "https://doi.org/10.7717/peerj.4375",
    "display_name": "The state of OA",
    "publication_year": 2018,
    "type": "article",
    "cited_by_count": 812,
    "primary_location": {
        "source": {"id": "https://openalex.org/S1983995261", "display_name": "PeerJ"},
        "landing_page_url": "https://peerj.com/articles/4375",
        "pdf_url": "https://peerj.com/articles/4375.pdf",
    },
    "open_access": {"is_oa": True, "oa_url": "https://peerj.com/articles/4375.pdf"},
    "authorships": [
        {"author": {"id": "https://openalex.org/A5023888391", "display_name": "Heather Piwowar"}},
    ],
    "abstract_inverted_index": {"Despite": [0], "growing": [1], "interest": [2], "in": [3], "OA": [4]},
    "concepts": [
        {"id": "https://openalex.org/C41008148", "display_name": "Computer science", "level": 0, "score": 0.5},
    ],
}


# === Test 1: OpenAlex search parameters ===

@pytest.mark.asyncio
async def test_openalex_search_params():
    from models.search import SearchFilters
    from services.openalex import OpenAlexClient

    session = mock_session(json_data={"meta": {"count": 1}, "results": [OPENALEX_WORK]})
    client = OpenAlexClient(email="me@example.org")
    filters = SearchFilters(year_min=2020, year_max=2024, open_access=True)

    with patch("services.upstream.aiohttp.ClientSession", return_value=session):
        response = await client.search("open access", limit=25, filters=filters)

    assert response["meta"]["count"] == 1
    assert len(response["results"]) == 1

    args, kwargs = session.get.call_args
    assert args[0] == "https://api.openalex.org/works"
    params = kwargs["params"]
    assert params["search"] == "open access"
    assert params["per_page"] == 25
    assert params["page"] == 1
    assert params["sort"] == "relevance_score:desc"
    assert params["mailto"] == "me@example.org"
    assert params["filter"] == "publication_year:2020-2024,is_oa:true"


@pytest.mark.asyncio
async def test_openalex_sort_from_filters():
    from models.search import SearchFilters
    from services.openalex import OpenAlexClient

    session = mock_session(json_data={"meta": {"count": 0}, "results": []})
    with patch("services.upstream.aiohttp.ClientSession", return_value=session):
        await OpenAlexClient().search("q", 10, filters=SearchFilters(sort_by="cited_by_count:desc"))

    params = session.get.call_args.kwargs["params"]
    assert params["sort"] == "cited_by_count:desc"
    assert "filter" not in params


# === Test 2: Status mapping ===

@pytest.mark.asyncio
async def test_429_raises_rate_limit_with_retry_after():
    from services.openalex import OpenAlexClient
    from utils.errors import RateLimitError

    session = mock_session(status=429, headers={"Retry-After": "5"})
    with patch("services.upstream.aiohttp.ClientSession", return_value=session):
        with pytest.raises(RateLimitError) as exc_info:
            await OpenAlexClient().search("q", 10)
    assert exc_info.value.retry_after == 5.0


@pytest.mark.asyncio
@pytest.mark.parametrize("status,error_name", [
    (500, "RetryableServiceError"),
    (503, "RetryableServiceError"),
    (404, "NotFoundError"),
    (400, "RequestRejectedError"),
    (403, "RequestRejectedError"),
])
async def test_status_mapping(status, error_name):
    import utils.errors as errors
    from services.openalex import OpenAlexClient

    session = mock_session(status=status, text="nope")
    with patch("services.upstream.aiohttp.ClientSession", return_value=session):
        with pytest.raises(getattr(errors, error_name)):
            await OpenAlexClient().get_by_id("W1")


@pytest.mark.asyncio
async def test_timeout_is_retryable():
    from services.openalex import OpenAlexClient
    from utils.errors import ErrorType, RetryableServiceError, classify_error

    session = mock_session()
    session.get = MagicMock(side_effect=asyncio.TimeoutError)
    with patch("services.upstream.aiohttp.ClientSession", return_value=session):
        with pytest.raises(RetryableServiceError) as exc_info:
            await OpenAlexClient().search("q", 10)
    assert classify_error(exc_info.value) is ErrorType.RETRYABLE


@pytest.mark.asyncio
async def test_connection_error_is_retryable():
    from services.openalex import OpenAlexClient
    from utils.errors import RetryableServiceError

    session = mock_session()
    session.get = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))
    with patch("services.upstream.aiohttp.ClientSession", return_value=session):
        with pytest.raises(RetryableServiceError):
            await OpenAlexClient().search("q", 10)


@pytest.mark.asyncio
async def test_non_object_payload_unclassified():
    from services.openalex import OpenAlexClient
    from utils.errors import UnclassifiedError

    session = mock_session(json_data=["not", "an", "object"])
    with patch("services.upstream.aiohttp.ClientSession", return_value=session):
        with pytest.raises(UnclassifiedError):
            await OpenAlexClient().search("q", 10)


# === Test 3: OpenAlex conversion ===

def test_openalex_to_paper():
    from services.openalex import OpenAlexClient

    paper = OpenAlexClient().to_paper(OPENALEX_WORK)

    assert paper.paper_id == "W2741809807"
    assert paper.title == "The state of OA"
    assert paper.abstract == "Despite growing interest in OA"
    assert paper.year == 2018
    assert paper.venue == "PeerJ"
    assert paper.citation_count == 812
    assert paper.authors[0].author_id == "A5023888391"
    assert paper.authors[0].name == "Heather Piwowar"
    assert paper.url == "https://peerj.com/articles/4375"
    assert paper.is_open_access is True
    assert paper.concepts[0]["name"] == "Computer science"
    assert paper.created_at == paper.updated_at


def test_openalex_to_paper_drops_implausible_year():
    from services.openalex import OpenAlexClient

    paper = OpenAlexClient().to_paper({**OPENALEX_WORK, "publication_year": 1066})
    assert paper.year is None


def test_reconstruct_abstract_orders_by_position():
    from services.openalex import reconstruct_abstract

    assert reconstruct_abstract({"world": [1], "hello": [0], "again": [2]}) == "hello world again"
    assert reconstruct_abstract(None) is None
    assert reconstruct_abstract({}) is None


# === Test 4: Semantic Scholar ===

@pytest.mark.asyncio
async def test_semantic_scholar_search_normalized():
    from models.search import SearchFilters
    from services.semantic_scholar import SEARCH_FIELDS, SemanticScholarClient

    payload = {"total": 2, "data": [{"paperId": "abc", "title": "One"}, {"paperId": "def", "title": "Two"}]}
    session = mock_session(json_data=payload)
    client = SemanticScholarClient(api_key="secret")
    filters = SearchFilters(year_min=2020, min_citations=50)

    with patch("services.upstream.aiohttp.ClientSession", return_value=session):
        response = await client.search("transformers", limit=2, filters=filters)

    assert response == {"meta": {"count": 2}, "results": payload["data"]}

    args, kwargs = session.get.call_args
    assert args[0] == "https://api.semanticscholar.org/graph/v1/paper/search"
    assert kwargs["params"]["fields"] == SEARCH_FIELDS
    assert kwargs["params"]["year"] == "2020-"
    assert kwargs["params"]["minCitationCount"] == 50
    assert kwargs["headers"]["x-api-key"] == "secret"


def test_semantic_scholar_to_paper():
    from services.semantic_scholar import SemanticScholarClient

    raw = {
        "paperId": "649def34",
        "title": "Attention Is All You Need",
        "year": "2017",
        "citationCount": 90000,
        "venue": "",
        "authors": [{"authorId": "1", "name": "Ashish Vaswani"}],
        "externalIds": {"DOI": "10.48550/arXiv.1706.03762"},
        "openAccessPdf": {"url": "https://arxiv.org/pdf/1706.03762"},
    }
    paper = SemanticScholarClient().to_paper(raw)

    assert paper.paper_id == "649def34"
    assert paper.year == 2017
    assert paper.venue is None
    assert paper.authors[0].author_id == "1"
    assert paper.doi == "10.48550/arXiv.1706.03762"
    assert paper.pdf_url == "https://arxiv.org/pdf/1706.03762"


def test_clients_satisfy_protocol():
    from services.openalex import OpenAlexClient
    from services.semantic_scholar import SemanticScholarClient
    from services.upstream import UpstreamClient

    assert isinstance(OpenAlexClient(), UpstreamClient)
    assert isinstance(SemanticScholarClient(), UpstreamClient)
