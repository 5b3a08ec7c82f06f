"""Graph credential provider with an expiry-aware application-token cache.

Application tokens come from the OAuth2 client-credentials grant against
the tenant's authority and are cached until shortly before expiry.
Delegated tokens belong to the signed-in caller and are supplied by an
injected callable; acquiring them (the interactive sign-in) happens
outside this package.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx
import structlog

from src.meetsync.graph.exceptions import CredentialError

logger = structlog.get_logger(__name__)

GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"

# Refresh this many seconds before the reported expiry.
EXPIRY_SKEW_SECONDS = 60

DelegatedTokenSource = Callable[[], "str | None | Awaitable[str | None]"]


@dataclass
class _AppTokenCache:
    token: str | None = None
    expires_at: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def valid(self) -> bool:
        return bool(self.token) and time.monotonic() < self.expires_at


class GraphCredentialProvider:
    """Supplies delegated and application tokens for Graph calls.

    One instance is created per process (or per test) and injected into
    the Graph adapters; no module-level token state exists.

    Args:
        tenant_id: Entra ID tenant id.
        client_id: App registration client id.
        client_secret: App registration secret.
        delegated_token_source: Callable returning the caller's delegated
            token (sync or async), or None when there is no signed-in user.
        authority_url: Login authority base URL.
        timeout: HTTP timeout for the token request.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        delegated_token_source: DelegatedTokenSource | None = None,
        authority_url: str = "https://login.microsoftonline.com",
        timeout: float = 30.0,
    ) -> None:
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._delegated_token_source = delegated_token_source
        self._authority_url = authority_url
        self._token_url = f"{authority_url.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"
        self._timeout = timeout
        self._cache = _AppTokenCache()

    def with_delegated_token(self, token: str | None) -> GraphCredentialProvider:
        """Provider bound to one caller's token, sharing this app-token cache."""
        bound = GraphCredentialProvider(
            self._tenant_id,
            self._client_id,
            self._client_secret,
            delegated_token_source=lambda: token,
            authority_url=self._authority_url,
            timeout=self._timeout,
        )
        bound._cache = self._cache
        return bound

    async def get_delegated_token(self) -> str | None:
        """Return the caller's delegated token, or None if not signed in."""
        if self._delegated_token_source is None:
            return None
        token = self._delegated_token_source()
        if inspect.isawaitable(token):
            token = await token
        return token or None

    async def require_delegated_token(self) -> str:
        """Delegated token or CredentialError."""
        token = await self.get_delegated_token()
        if not token:
            raise CredentialError("No delegated token available for the caller")
        return token

    async def get_application_token(self) -> str:
        """Return a cached application token, refreshing it when near expiry.

        Raises:
            CredentialError: If the app registration is incomplete or the
                token endpoint refuses the request.
        """
        if self._cache.valid():
            return self._cache.token  # type: ignore[return-value]

        async with self._cache.lock:
            # Another task may have refreshed while we waited.
            if self._cache.valid():
                return self._cache.token  # type: ignore[return-value]

            token, expires_in = await self._request_application_token()
            self._cache.token = token
            self._cache.expires_at = (
                time.monotonic() + max(expires_in - EXPIRY_SKEW_SECONDS, 0)
            )
            logger.info("graph.app_token_refreshed", expires_in=expires_in)
            return token

    async def _request_application_token(self) -> tuple[str, int]:
        if not (self._tenant_id and self._client_id and self._client_secret):
            raise CredentialError(
                "Missing GRAPH_TENANT_ID / GRAPH_CLIENT_ID / GRAPH_CLIENT_SECRET"
            )

        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
            "scope": GRAPH_DEFAULT_SCOPE,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._token_url, data=data)
        except httpx.HTTPError as exc:
            raise CredentialError(f"App token request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error(
                "graph.app_token_failed",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise CredentialError(f"App token request failed: HTTP {response.status_code}")

        payload = response.json()
        token = payload.get("access_token")
        if not token:
            raise CredentialError("App token response has no access_token")
        return token, int(payload.get("expires_in", 3600))
