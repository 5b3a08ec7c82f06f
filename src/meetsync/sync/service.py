"""Sync service: wires Graph adapters, the repository and the orchestrator.

Used by the HTTP route and by the scheduled scripts, so both run the
same pass with the same settings.
"""

from __future__ import annotations

import httpx
import structlog

from src.meetsync.config import Settings
from src.meetsync.graph.auth import GraphCredentialProvider
from src.meetsync.graph.calendar import GraphCalendarProvider
from src.meetsync.graph.client import GraphClient
from src.meetsync.graph.exceptions import CredentialError, GraphAPIError, GraphAuthError
from src.meetsync.graph.online_meetings import GraphConferencingProvider
from src.meetsync.graph.transcripts import GraphTranscriptProvider
from src.meetsync.meetings.repository import MeetingRepository
from src.meetsync.meetings.schemas import SyncFilters, SyncResult, SyncWindow, Viewer
from src.meetsync.sync.exceptions import EventFetchError
from src.meetsync.sync.orchestrator import ReconciliationOrchestrator, default_window
from src.meetsync.sync.protocols import CalendarProvider
from src.meetsync.sync.transcript_import import TranscriptImporter

logger = structlog.get_logger(__name__)


class SyncService:
    """Runs a sync pass for the signed-in viewer.

    Args:
        calendar: Calendar Provider bound to the viewer's delegated token.
        orchestrator: Configured ReconciliationOrchestrator.
        window_days: Default trailing window when the caller gives none.
        importer: Optional TranscriptImporter for post-sync imports.
    """

    def __init__(
        self,
        calendar: CalendarProvider,
        orchestrator: ReconciliationOrchestrator,
        window_days: int = 365,
        importer: TranscriptImporter | None = None,
    ) -> None:
        self._calendar = calendar
        self._orchestrator = orchestrator
        self._window_days = window_days
        self.importer = importer

    async def get_viewer(self) -> Viewer:
        """Resolve the signed-in viewer; failures are fatal to the pass."""
        try:
            return await self._calendar.get_viewer()
        except GraphAuthError as exc:
            raise CredentialError(f"Delegated token rejected: {exc}") from exc
        except (GraphAPIError, httpx.HTTPError) as exc:
            raise EventFetchError(f"Viewer lookup failed: {exc}") from exc

    async def run(
        self,
        window: SyncWindow | None = None,
        filters: SyncFilters | None = None,
    ) -> SyncResult:
        viewer = await self.get_viewer()
        return await self._orchestrator.sync(
            viewer,
            window or default_window(self._window_days),
            filters or SyncFilters(),
        )


def build_sync_service(
    settings: Settings,
    credentials: GraphCredentialProvider,
    repository: MeetingRepository | None,
) -> SyncService:
    """Assemble a SyncService from settings.

    The calendar is read with the caller's delegated token; online
    meetings and transcripts of other organizers need the application
    token.
    """
    delegated_client = GraphClient(
        credentials.require_delegated_token,
        base_url=settings.GRAPH_BASE_URL,
        timeout=settings.GRAPH_TIMEOUT,
    )
    app_client = GraphClient(
        credentials.get_application_token,
        base_url=settings.GRAPH_BASE_URL,
        timeout=settings.GRAPH_TIMEOUT,
    )

    calendar = GraphCalendarProvider(
        delegated_client,
        page_size=settings.SYNC_PAGE_SIZE,
        timezone_name=settings.GRAPH_CALENDAR_TIMEZONE,
    )
    conferencing = GraphConferencingProvider(app_client)
    transcripts = GraphTranscriptProvider(app_client)

    orchestrator = ReconciliationOrchestrator(
        calendar,
        conferencing,
        transcripts,
        repository,
        max_events=settings.SYNC_MAX_EVENTS,
        max_concurrency=settings.SYNC_MAX_CONCURRENCY,
        timeout_seconds=settings.SYNC_TIMEOUT_SECONDS,
        probe_recordings=settings.SYNC_PROBE_RECORDINGS,
    )
    importer = (
        TranscriptImporter(repository, conferencing, transcripts)
        if repository is not None
        else None
    )
    return SyncService(
        calendar,
        orchestrator,
        window_days=settings.SYNC_WINDOW_DAYS,
        importer=importer,
    )
