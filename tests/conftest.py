"""Shared test doubles for the meeting sync engine.

Provides in-memory stand-ins for every collaborator the orchestrator
consumes:
- FakeCalendar: paged calendar events for one viewer
- FakeConferencing: organizer directory plus online meetings by join URL
- FakeTranscripts: transcript/recording collections per resource
- InMemoryMeetingStore: mirrors MeetingRepository upsert semantics
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import pytest

from src.meetsync.graph.exceptions import (
    CredentialError,
    GraphAPIError,
    GraphNotFoundError,
)
from src.meetsync.meetings.schemas import (
    CalendarEvent,
    Meeting,
    MeetingParticipant,
    MeetingUpsert,
    Participant,
    ParticipantRole,
    TranscriptDescriptor,
    TranscriptSegment,
    Viewer,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ── Calendar ─────────────────────────────────────────────────────────────────


class FakeCalendar:
    """Serves ``events`` in pages of ``page_size`` using offset cursors."""

    def __init__(
        self,
        events: list[CalendarEvent] | None = None,
        page_size: int = 2,
        viewer: Viewer | None = None,
    ) -> None:
        self.events = events or []
        self.page_size = page_size
        self.viewer = viewer or Viewer(
            id="viewer-id", email="viewer@contoso.com", display_name="Vera Viewer"
        )
        self.fail_on_page: int | None = None
        self.cursors: list[str | None] = []

    async def get_viewer(self) -> Viewer:
        return self.viewer

    async def list_events(self, principal, start, end, cursor=None):
        self.cursors.append(cursor)
        offset = int(cursor) if cursor else 0
        if self.fail_on_page is not None and offset // self.page_size == self.fail_on_page:
            raise GraphAPIError("calendar unavailable", status_code=503)
        page = self.events[offset : offset + self.page_size]
        next_offset = offset + self.page_size
        return page, (str(next_offset) if next_offset < len(self.events) else None)


# ── Conferencing ─────────────────────────────────────────────────────────────


class FakeConferencing:
    """Organizer directory and online meetings searchable by join URL.

    Searches return the first stored meeting that matches, in insertion
    order, like a provider returning its default order.
    """

    def __init__(self) -> None:
        self.organizers: dict[str, str] = {}
        self.meetings: dict[str, list[tuple[str, str]]] = {}
        self.failing_organizer_ids: set[str] = set()
        self.credential_failure = False
        self.delay = 0.0
        self.lookups: list[str] = []
        self.searches: list[tuple[str, bool, str]] = []

    def add_organizer(self, email: str, organizer_id: str) -> None:
        self.organizers[email.lower()] = organizer_id

    def add_meeting(self, organizer_id: str, resource_id: str, join_url: str) -> None:
        self.meetings.setdefault(organizer_id, []).append((resource_id, join_url))

    async def resolve_organizer_id(self, email: str) -> str | None:
        self.lookups.append(email)
        if self.credential_failure:
            raise CredentialError("app token refused")
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.organizers.get(email.lower())

    async def find_resource_by_join_url(self, organizer_id, exact, url_or_prefix):
        self.searches.append((organizer_id, exact, url_or_prefix))
        if organizer_id in self.failing_organizer_ids:
            raise GraphAPIError("onlineMeetings search failed", status_code=500)
        for resource_id, join_url in self.meetings.get(organizer_id, []):
            if exact and join_url == url_or_prefix:
                return resource_id
            if not exact and join_url.startswith(url_or_prefix):
                return resource_id
        return None

    def exact_searches(self) -> list[tuple[str, bool, str]]:
        return [s for s in self.searches if s[1]]


# ── Transcripts ──────────────────────────────────────────────────────────────


class FakeTranscripts:
    def __init__(self) -> None:
        self.transcripts: dict[str, list[TranscriptDescriptor]] = {}
        self.recordings: set[str] = set()
        self.unsupported: set[str] = set()
        self.content: dict[str, str] = {}

    def add_transcript(self, resource_id: str, transcript_id: str) -> TranscriptDescriptor:
        descriptor = TranscriptDescriptor(
            id=transcript_id,
            created_at=NOW,
            content_url=f"https://graph.test/transcripts/{transcript_id}/content",
            meeting_id=resource_id,
        )
        self.transcripts.setdefault(resource_id, []).append(descriptor)
        return descriptor

    async def list_transcripts(self, organizer_id, resource_id):
        if resource_id in self.unsupported:
            raise GraphNotFoundError("no transcript capability", status_code=404)
        return list(self.transcripts.get(resource_id, []))

    async def list_recordings(self, organizer_id, resource_id):
        return [{"id": "rec-1"}] if resource_id in self.recordings else []

    async def fetch_transcript_content(self, organizer_id, resource_id, descriptor):
        return self.content[descriptor.id]


# ── Meeting Store ────────────────────────────────────────────────────────────


class InMemoryMeetingStore:
    """In-memory test double for MeetingRepository.

    Same keys and same upsert rules as the SQL repository: meetings by
    resource id then event id, participants by lower-cased email, links
    by (meeting, participant). Meeting event ids and resource ids are
    unique; a write that would duplicate one raises, as the database's
    unique constraints do.
    """

    def __init__(self) -> None:
        self.meetings: dict[uuid.UUID, Meeting] = {}
        self.participants: dict[str, Participant] = {}
        self.links: dict[tuple[uuid.UUID, uuid.UUID], MeetingParticipant] = {}
        self.segments: dict[uuid.UUID, list[TranscriptSegment]] = {}
        self.failing_event_ids: set[str] = set()

    async def upsert_meeting(self, data: MeetingUpsert) -> Meeting:
        if data.external_event_id in self.failing_event_ids:
            raise RuntimeError("database unavailable")

        by_resource = None
        if data.resource_id:
            by_resource = await self.get_meeting_by_resource_id(data.resource_id)
        by_event = await self.get_meeting_by_event_id(data.external_event_id)
        if by_resource is not None and by_event is not None and by_resource.id != by_event.id:
            self._merge_meeting(source=by_event, target=by_resource.id)
        existing = by_resource or by_event

        fields = data.model_dump()
        if existing is None:
            meeting = Meeting(id=uuid.uuid4(), created_at=NOW, **fields)
        else:
            if not data.resource_id:
                fields["resource_id"] = existing.resource_id
            meeting = self.meetings[existing.id].model_copy(
                update={**fields, "updated_at": NOW}
            )
        self._check_unique(meeting)
        self.meetings[meeting.id] = meeting
        return meeting

    def _merge_meeting(self, source: Meeting, target: uuid.UUID) -> None:
        for (mid, pid), link in list(self.links.items()):
            if mid != source.id:
                continue
            del self.links[(mid, pid)]
            if (target, pid) not in self.links:
                self.links[(target, pid)] = link.model_copy(update={"meeting_id": target})
        source_segments = self.segments.pop(source.id, [])
        if not self.segments.get(target) and source_segments:
            self.segments[target] = source_segments
            if self.meetings[target].full_transcript is None:
                self.meetings[target] = self.meetings[target].model_copy(
                    update={"full_transcript": source.full_transcript}
                )
        del self.meetings[source.id]

    def _check_unique(self, meeting: Meeting) -> None:
        for other in self.meetings.values():
            if other.id == meeting.id:
                continue
            if other.external_event_id == meeting.external_event_id:
                raise ValueError(
                    f"duplicate external_event_id: {meeting.external_event_id}"
                )
            if meeting.resource_id and other.resource_id == meeting.resource_id:
                raise ValueError(f"duplicate resource_id: {meeting.resource_id}")

    async def get_meeting(self, meeting_id: str) -> Meeting | None:
        return self.meetings.get(uuid.UUID(meeting_id))

    async def get_meeting_by_event_id(self, external_event_id: str) -> Meeting | None:
        return next(
            (m for m in self.meetings.values() if m.external_event_id == external_event_id),
            None,
        )

    async def get_meeting_by_resource_id(self, resource_id: str) -> Meeting | None:
        return next(
            (m for m in self.meetings.values() if m.resource_id == resource_id), None
        )

    async def upsert_participant(self, email: str, display_name: str) -> Participant:
        key = email.strip().lower()
        if not key:
            raise ValueError("participant email must not be empty")
        existing = self.participants.get(key)
        participant = Participant(
            id=existing.id if existing else uuid.uuid4(),
            email=key,
            display_name=display_name,
        )
        self.participants[key] = participant
        return participant

    async def upsert_meeting_participant(
        self,
        meeting_id: uuid.UUID,
        participant_id: uuid.UUID,
        role: ParticipantRole,
        response_status: str | None,
        present: bool = True,
    ) -> MeetingParticipant:
        existing = self.links.get((meeting_id, participant_id))
        link = MeetingParticipant(
            id=existing.id if existing else uuid.uuid4(),
            meeting_id=meeting_id,
            participant_id=participant_id,
            role=role,
            response_status=response_status,
            present=present,
        )
        self.links[(meeting_id, participant_id)] = link
        return link

    async def list_meeting_participants(self, meeting_id: uuid.UUID):
        by_id = {p.id: p for p in self.participants.values()}
        return sorted(
            (
                (by_id[link.participant_id], link)
                for (mid, _), link in self.links.items()
                if mid == meeting_id
            ),
            key=lambda pair: pair[0].email,
        )

    async def replace_transcript_segments(self, meeting_id, segments, full_text) -> int:
        if meeting_id not in self.meetings:
            raise ValueError(f"Meeting not found: id={meeting_id}")
        self.segments[meeting_id] = list(segments)
        self.meetings[meeting_id] = self.meetings[meeting_id].model_copy(
            update={"full_transcript": full_text}
        )
        return len(segments)

    async def get_transcript_segments(self, meeting_id):
        return list(self.segments.get(meeting_id, []))

    async def count_rows(self) -> dict[str, int]:
        return {
            "meetings": len(self.meetings),
            "participants": len(self.participants),
            "meeting_participants": len(self.links),
            "transcript_segments": sum(len(s) for s in self.segments.values()),
        }


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def conferencing() -> FakeConferencing:
    return FakeConferencing()


@pytest.fixture
def transcripts() -> FakeTranscripts:
    return FakeTranscripts()


@pytest.fixture
def store() -> InMemoryMeetingStore:
    return InMemoryMeetingStore()
