"""Upstream provider contract and shared HTTP handling.

Each provider client turns HTTP failures into the ScholarCache error
taxonomy here, so the retry policy never has to inspect raw responses.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import aiohttp

from models.paper import Paper
from models.search import SearchFilters
from utils.config import Config
from utils.errors import (
    NotFoundError,
    RateLimitError,
    RequestRejectedError,
    RetryableServiceError,
    UnclassifiedError,
)

logger = logging.getLogger(__name__)

USER_AGENT = "ScholarCache/0.1"


@runtime_checkable
class UpstreamClient(Protocol):
    """A bibliographic search provider.

    ``search`` returns ``{"meta": {"count": int}, "results": [raw, ...]}``.
    """

    name: str

    async def search(
        self,
        query: str,
        limit: int,
        sort: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
    ) -> Dict[str, Any]:
        ...

    async def get_by_id(self, paper_id: str) -> Dict[str, Any]:
        ...

    def to_paper(self, raw: Dict[str, Any]) -> Paper:
        ...


def now_isoformat() -> str:
    return datetime.now(timezone.utc).isoformat()


def _retry_after(response: aiohttp.ClientResponse) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


async def request_json(
    url: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """GET ``url`` and decode its JSON body.

    Raises:
        RateLimitError: HTTP 429
        NotFoundError: HTTP 404
        RequestRejectedError: any other 4xx
        RetryableServiceError: 5xx, timeouts and connection failures
        UnclassifiedError: a body that is not a JSON object
    """
    request_headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
    request_headers.update(headers or {})
    client_timeout = aiohttp.ClientTimeout(total=timeout or Config.REQUEST_TIMEOUT)

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                url, params=params, headers=request_headers, timeout=client_timeout
            ) as response:
                if response.status == 429:
                    raise RateLimitError(
                        f"Rate limit exceeded for {url}",
                        retry_after=_retry_after(response),
                        context={"url": url},
                    )
                if response.status >= 500:
                    raise RetryableServiceError(
                        f"Upstream error {response.status} for {url}",
                        status=response.status,
                        context={"url": url},
                    )
                if response.status == 404:
                    raise NotFoundError(f"Not found: {url}", context={"url": url})
                if response.status >= 400:
                    text = await response.text()
                    raise RequestRejectedError(
                        f"Request rejected with {response.status}: {text[:200]}",
                        status=response.status,
                        context={"url": url},
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise UnclassifiedError(f"Malformed JSON from {url}: {e}") from e
    except asyncio.TimeoutError as e:
        raise RetryableServiceError(f"Request to {url} timed out") from e
    except aiohttp.ClientConnectionError as e:
        raise RetryableServiceError(f"Connection error for {url}: {e}") from e

    if not isinstance(data, dict):
        raise UnclassifiedError(f"Unexpected payload type from {url}: {type(data).__name__}")
    return data


__all__ = ["UpstreamClient", "request_json", "now_isoformat", "USER_AGENT"]
