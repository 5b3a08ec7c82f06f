"""FastAPI dependency injection for Graph credentials and the sync service.

These dependencies are used in endpoint function signatures to inject
the caller's delegated token and a SyncService bound to it.
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status

from src.meetsync.config import get_settings
from src.meetsync.sync.service import SyncService, build_sync_service


async def get_delegated_token(request: Request) -> str:
    """Bearer token of the signed-in caller.

    Raises:
        HTTPException(401): If the Authorization header is missing or not Bearer.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer ") or not auth_header[7:].strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing delegated bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_header[7:].strip()


def _get_credential_provider(request: Request) -> Any:
    """Retrieve GraphCredentialProvider from app.state, 503 if not available."""
    provider = getattr(request.app.state, "credential_provider", None)
    if provider is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Graph credentials not configured",
        )
    return provider


async def get_sync_service(
    request: Request,
    token: str = Depends(get_delegated_token),
) -> SyncService:
    """SyncService bound to the caller's delegated token."""
    credentials = _get_credential_provider(request).with_delegated_token(token)
    repository = getattr(request.app.state, "meeting_repository", None)
    return build_sync_service(get_settings(), credentials, repository)
