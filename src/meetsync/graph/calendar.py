"""Calendar adapter over Microsoft Graph ``calendarView``.

Turns Graph event JSON into CalendarEvent objects and exposes the paged
``list_events`` contract consumed by the Event Window Fetcher, plus
``get_viewer`` for the signed-in principal.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from src.meetsync.graph.client import GraphClient
from src.meetsync.meetings.schemas import CalendarEvent, EventPerson, Viewer

logger = structlog.get_logger(__name__)

EVENT_SELECT_FIELDS = (
    "id",
    "subject",
    "start",
    "end",
    "onlineMeeting",
    "organizer",
    "attendees",
    "onlineMeetingProvider",
    "isOnlineMeeting",
    "webLink",
    "location",
    "responseStatus",
    "onlineMeetingUrl",
)


def parse_graph_datetime(value: dict[str, Any] | None) -> datetime | None:
    """Parse a Graph ``dateTimeTimeZone`` object into an aware datetime.

    Graph emits up to seven fractional digits, which ``fromisoformat``
    does not accept on every interpreter, so they are cut to six.
    Unknown (e.g. Windows-style) zone names fall back to UTC.
    """
    if not value or not value.get("dateTime"):
        return None
    raw = value["dateTime"].rstrip("Z")
    if "." in raw:
        head, frac = raw.split(".", 1)
        raw = f"{head}.{frac[:6]}"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        return parsed

    tz_name = value.get("timeZone") or "UTC"
    try:
        tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz = timezone.utc
    return parsed.replace(tzinfo=tz)


def _person(entry: dict[str, Any] | None) -> EventPerson:
    entry = entry or {}
    address = entry.get("emailAddress") or {}
    status = entry.get("status") or {}
    return EventPerson(
        email=address.get("address"),
        name=address.get("name"),
        response=status.get("response"),
    )


def parse_graph_event(item: dict[str, Any]) -> CalendarEvent:
    """Map one Graph event resource onto CalendarEvent."""
    online_meeting = item.get("onlineMeeting") or {}
    join_url = online_meeting.get("joinUrl") or item.get("onlineMeetingUrl")
    location = (item.get("location") or {}).get("displayName") or None
    response_status = (item.get("responseStatus") or {}).get("response")

    return CalendarEvent(
        id=item["id"],
        subject=item.get("subject"),
        start=parse_graph_datetime(item.get("start")),
        end=parse_graph_datetime(item.get("end")),
        organizer=_person(item.get("organizer")),
        attendees=[_person(a) for a in item.get("attendees") or []],
        join_url=join_url or None,
        is_online_meeting=bool(item.get("isOnlineMeeting")),
        online_meeting_provider=item.get("onlineMeetingProvider"),
        web_link=item.get("webLink"),
        location=location,
        conference_id=online_meeting.get("conferenceId"),
        viewer_response=response_status,
    )


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class GraphCalendarProvider:
    """Calendar Provider backed by the caller's delegated Graph client.

    Args:
        client: GraphClient authenticated with the delegated token.
        page_size: ``$top`` per calendarView page.
        timezone_name: Zone requested via the ``Prefer`` header.
    """

    def __init__(
        self,
        client: GraphClient,
        page_size: int = 250,
        timezone_name: str = "UTC",
    ) -> None:
        self._client = client
        self._page_size = page_size
        self._timezone_name = timezone_name

    async def get_viewer(self) -> Viewer:
        """The signed-in principal (``/me``)."""
        me = await self._client.get_json(
            "/me", params={"$select": "id,userPrincipalName,mail,displayName"}
        )
        email = me.get("userPrincipalName") or me.get("mail") or ""
        return Viewer(id=me["id"], email=email, display_name=me.get("displayName"))

    async def list_events(
        self,
        principal: str,
        start: datetime,
        end: datetime,
        cursor: str | None = None,
    ) -> tuple[list[CalendarEvent], str | None]:
        """One page of the principal's calendarView between ``start`` and ``end``.

        Returns:
            Parsed events and the next-page cursor, or None when exhausted.
        """
        headers = {"Prefer": f'outlook.timezone="{self._timezone_name}"'}
        if cursor:
            items, next_cursor = await self._client.get_page(cursor, headers=headers)
        else:
            items, next_cursor = await self._client.get_page(
                f"/users/{principal}/calendarView",
                params={
                    "startDateTime": _iso(start),
                    "endDateTime": _iso(end),
                    "$select": ",".join(EVENT_SELECT_FIELDS),
                    "$orderby": "start/dateTime desc",
                    "$top": self._page_size,
                },
                headers=headers,
            )

        events: list[CalendarEvent] = []
        for item in items:
            if not item.get("id"):
                logger.debug("graph.event_without_id_skipped")
                continue
            events.append(parse_graph_event(item))
        return events, next_cursor
