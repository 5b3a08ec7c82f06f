"""Meeting sync endpoint.

POST /api/v1/sync runs one reconciliation pass for the caller identified
by the delegated bearer token and returns the matched meetings with the
pass counters. Partial failures still return 200; only fatal errors map
to error statuses.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator

from src.meetsync.api.deps import get_sync_service
from src.meetsync.graph.exceptions import CredentialError
from src.meetsync.meetings.schemas import RoleFilter, SyncFilters, SyncResult, SyncWindow
from src.meetsync.sync.exceptions import EventFetchError, SyncTimeoutError
from src.meetsync.sync.service import SyncService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


class SyncRequest(BaseModel):
    """Body of a sync request; every field is optional."""

    start: datetime | None = None
    end: datetime | None = None
    role: RoleFilter = RoleFilter.ALL
    only_with_transcripts: bool = False
    limit: int | None = Field(None, ge=0)
    persist: bool = True

    @model_validator(mode="after")
    def check_window(self) -> SyncRequest:
        if (self.start is None) != (self.end is None):
            raise ValueError("start and end must be given together")
        if self.start is not None and self.end is not None and self.start >= self.end:
            raise ValueError("start must be before end")
        return self

    def window(self) -> SyncWindow | None:
        if self.start is None or self.end is None:
            return None
        return SyncWindow(start=self.start, end=self.end)

    def filters(self) -> SyncFilters:
        return SyncFilters(
            role=self.role,
            only_with_transcripts=self.only_with_transcripts,
            limit=self.limit,
            persist=self.persist,
        )


@router.post("", response_model=SyncResult)
async def run_sync(
    body: SyncRequest | None = None,
    service: SyncService = Depends(get_sync_service),
) -> SyncResult:
    """Run one sync pass for the caller."""
    body = body or SyncRequest()
    try:
        return await service.run(body.window(), body.filters())
    except CredentialError as exc:
        logger.warning("sync_credentials_rejected", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    except EventFetchError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    except SyncTimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=str(exc),
        ) from exc
