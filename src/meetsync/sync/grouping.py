"""Online-meeting filter and Organizer Grouper."""

from __future__ import annotations

from src.meetsync.meetings.schemas import CalendarEvent

TEAMS_WEB_HOST = "teams.microsoft.com"


def is_online_meeting(event: CalendarEvent) -> bool:
    """True when the event is flagged or inferable as an online meeting."""
    if event.is_online_meeting or event.join_url:
        return True
    if event.online_meeting_provider and "teams" in event.online_meeting_provider.lower():
        return True
    return bool(event.web_link and TEAMS_WEB_HOST in event.web_link.lower())


def group_by_organizer(
    events: list[CalendarEvent],
) -> tuple[dict[str, list[CalendarEvent]], list[CalendarEvent]]:
    """Partition events by lower-cased organizer email.

    Returns:
        The groups in first-seen order, and the events dropped for lacking
        an organizer email.
    """
    groups: dict[str, list[CalendarEvent]] = {}
    dropped: list[CalendarEvent] = []
    for event in events:
        organizer = event.organizer_email
        if organizer is None:
            dropped.append(event)
            continue
        groups.setdefault(organizer, []).append(event)
    return groups, dropped
