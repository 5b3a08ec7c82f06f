"""Event Window Fetcher: drain calendar pages for one principal."""

from __future__ import annotations

import httpx
import structlog

from src.meetsync.graph.exceptions import GraphAPIError
from src.meetsync.meetings.schemas import CalendarEvent, SyncWindow
from src.meetsync.sync.exceptions import EventFetchError
from src.meetsync.sync.protocols import CalendarProvider

logger = structlog.get_logger(__name__)

DEFAULT_MAX_EVENTS = 2000


class EventWindowFetcher:
    """Paginates a Calendar Provider until exhaustion or the event cap.

    Args:
        calendar: Calendar Provider.
        max_events: Hard ceiling on fetched events; the result is truncated
            to it.
    """

    def __init__(
        self, calendar: CalendarProvider, max_events: int = DEFAULT_MAX_EVENTS
    ) -> None:
        self._calendar = calendar
        self._max_events = max_events

    async def fetch(self, principal: str, window: SyncWindow) -> list[CalendarEvent]:
        """All events of ``principal`` in ``window``, capped at ``max_events``.

        Raises:
            EventFetchError: If any page request fails. Credential errors
                propagate unchanged.
        """
        events: list[CalendarEvent] = []
        cursor: str | None = None
        pages = 0

        while True:
            try:
                page, cursor = await self._calendar.list_events(
                    principal, window.start, window.end, cursor
                )
            except (GraphAPIError, httpx.HTTPError) as exc:
                logger.error(
                    "event_fetch_failed",
                    principal=principal,
                    pages_fetched=pages,
                    error=str(exc),
                )
                raise EventFetchError(
                    f"Calendar fetch failed after {pages} page(s): {exc}",
                    pages_fetched=pages,
                ) from exc

            pages += 1
            events.extend(page)

            if len(events) >= self._max_events:
                logger.info(
                    "event_fetch_capped",
                    principal=principal,
                    cap=self._max_events,
                    pages=pages,
                )
                return events[: self._max_events]
            if not cursor:
                break

        logger.info("events_fetched", principal=principal, count=len(events), pages=pages)
        return events
