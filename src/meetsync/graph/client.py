"""Authenticated async HTTP client for Microsoft Graph.

GraphClient issues GET requests with a bearer token from an injected
token source, maps non-2xx responses onto the GraphAPIError hierarchy,
and follows ``@odata.nextLink`` cursors. Transient failures (429, 5xx,
connect errors, timeouts) are retried with tenacity: 3 attempts,
exponential backoff 1-10s. Everything else propagates immediately.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.meetsync.graph.exceptions import (
    GraphAPIError,
    GraphRateLimitError,
    error_for_status,
)

logger = structlog.get_logger(__name__)

TokenSource = Callable[[], Awaitable[str]]


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException, GraphRateLimitError)):
        return True
    return (
        isinstance(exc, GraphAPIError)
        and exc.status_code is not None
        and exc.status_code >= 500
    )


_graph_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


def _error_from_response(response: httpx.Response) -> GraphAPIError:
    code: str | None = None
    message = response.text[:500]
    try:
        body = response.json()
        error = body.get("error", {}) if isinstance(body, dict) else {}
        code = error.get("code")
        message = error.get("message") or message
    except ValueError:
        pass

    retry_after: float | None = None
    header = response.headers.get("Retry-After")
    if header and header.isdigit():
        retry_after = float(header)

    return error_for_status(
        response.status_code,
        f"Graph {response.request.method} {response.request.url.path} -> "
        f"{response.status_code}: {message}",
        code=code,
        retry_after=retry_after,
    )


class GraphClient:
    """Thin Graph REST client bound to one token source.

    Args:
        token_source: Async callable returning a bearer token.
        base_url: Graph version root, e.g. ``https://graph.microsoft.com/v1.0``.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        token_source: TokenSource,
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout: float = 30.0,
    ) -> None:
        self._token_source = token_source
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def url(self, path: str) -> str:
        """Absolute URL for a Graph path; absolute URLs pass through."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        token = await self._token_source()
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    @_graph_retry
    async def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(
                self.url(path),
                params=params,
                headers=await self._headers(headers),
            )
        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.debug(
                "graph.request_failed",
                path=response.request.url.path,
                status_code=response.status_code,
                code=error.code,
            )
            raise error
        return response

    async def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """GET a Graph resource and decode the JSON body."""
        response = await self._get(path, params=params, headers=headers)
        return response.json()

    async def get_text(self, path: str, params: dict[str, Any] | None = None) -> str:
        """GET a non-JSON resource (e.g. transcript content) as text."""
        response = await self._get(path, params=params, headers={"Accept": "text/vtt"})
        return response.text

    async def get_page(
        self,
        path_or_cursor: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[list[dict[str, Any]], str | None]:
        """Fetch one page of a collection.

        A ``@odata.nextLink`` cursor already carries its query, so
        ``params`` are only sent with the first request.

        Returns:
            The ``value`` items and the next-page cursor (None when exhausted).
        """
        is_cursor = path_or_cursor.startswith("http")
        body = await self.get_json(
            path_or_cursor,
            params=None if is_cursor else params,
            headers=headers,
        )
        return list(body.get("value", [])), body.get("@odata.nextLink")
