"""Pydantic v2 schemas for the meeting-sync domain.

Defines the data contracts shared by the Graph adapters, the sync engine,
the repository, and the HTTP surface: calendar input (CalendarEvent,
EventPerson), conferencing/transcript descriptors, persisted records
(Meeting, Participant, MeetingParticipant, TranscriptSegment), and the
sync request/result shapes.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class ParticipantRole(str, Enum):
    """Role of a person on a meeting."""

    ORGANIZER = "organizer"
    ATTENDEE = "attendee"


class RoleFilter(str, Enum):
    """Caller-side filter on the viewer's role in a meeting."""

    ALL = "all"
    ORGANIZER = "organizer"
    ATTENDEE = "attendee"


class OutcomeStatus(str, Enum):
    """Tagged result of a scoped unit of sync work."""

    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    FAILED = "failed"


TRANSCRIPT_SOURCE_GRAPH = "graph"


# ── Calendar Input ───────────────────────────────────────────────────────────


class EventPerson(BaseModel):
    """Organizer or attendee as reported on a calendar event."""

    email: str | None = None
    name: str | None = None
    response: str | None = None


class CalendarEvent(BaseModel):
    """Calendar event as fetched from the provider. Never persisted verbatim."""

    id: str
    subject: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    organizer: EventPerson = Field(default_factory=EventPerson)
    attendees: list[EventPerson] = Field(default_factory=list)
    join_url: str | None = None
    is_online_meeting: bool = False
    online_meeting_provider: str | None = None
    web_link: str | None = None
    location: str | None = None
    conference_id: str | None = None
    viewer_response: str | None = None

    @property
    def organizer_email(self) -> str | None:
        email = (self.organizer.email or "").strip().lower()
        return email or None


# ── Conferencing / Transcript Descriptors ────────────────────────────────────


class TranscriptDescriptor(BaseModel):
    """Lightweight record describing an available machine transcript."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    created_at: datetime | None = Field(None, alias="createdDateTime")
    content_url: str | None = Field(None, alias="transcriptContentUrl")
    meeting_id: str | None = Field(None, alias="meetingId")


class TranscriptSegment(BaseModel):
    """One timed caption block from a transcript track."""

    start_ms: int
    end_ms: int
    speaker: str | None = None
    text: str


# ── Persisted Records ────────────────────────────────────────────────────────


class Meeting(BaseModel):
    """Canonical local meeting record."""

    id: uuid.UUID
    external_event_id: str
    resource_id: str | None = None
    title: str
    start_at: datetime | None = None
    end_at: datetime | None = None
    organizer_email: str | None = None
    join_url: str | None = None
    has_transcript: bool = False
    has_recording: bool = False
    transcript_source: str | None = None
    transcript_raw: list[dict[str, Any]] = Field(default_factory=list)
    full_transcript: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Participant(BaseModel):
    """A person observed as organizer or attendee, keyed by lower-cased email."""

    id: uuid.UUID
    email: str
    display_name: str


class MeetingParticipant(BaseModel):
    """Link between a meeting and a participant (last observation wins)."""

    id: uuid.UUID
    meeting_id: uuid.UUID
    participant_id: uuid.UUID
    role: ParticipantRole
    response_status: str | None = None
    present: bool = True


class MeetingUpsert(BaseModel):
    """Field values written to a Meeting row on every reconciliation."""

    external_event_id: str
    resource_id: str | None = None
    title: str
    start_at: datetime | None = None
    end_at: datetime | None = None
    organizer_email: str | None = None
    join_url: str | None = None
    has_transcript: bool = False
    has_recording: bool = False
    transcript_source: str | None = TRANSCRIPT_SOURCE_GRAPH
    transcript_raw: list[dict[str, Any]] = Field(default_factory=list)


class ParticipantObservation(BaseModel):
    """A person seen on an event, ready to be upserted."""

    email: str
    display_name: str
    role: ParticipantRole
    response_status: str | None = None
    present: bool = True


# ── Sync Request / Result ────────────────────────────────────────────────────


class SyncWindow(BaseModel):
    """Time window of calendar events to reconcile."""

    start: datetime
    end: datetime


class SyncFilters(BaseModel):
    """Caller filters applied after match-back."""

    role: RoleFilter = RoleFilter.ALL
    only_with_transcripts: bool = False
    limit: int | None = Field(None, ge=0)
    persist: bool = True


class Viewer(BaseModel):
    """The principal whose calendar is being reconciled."""

    id: str
    email: str
    display_name: str | None = None


class MatchedMeeting(BaseModel):
    """An online meeting that survived match-back and caller filters."""

    event_id: str
    title: str
    start: datetime | None = None
    end: datetime | None = None
    join_url: str
    web_link: str | None = None
    location: str | None = None
    organizer: EventPerson
    attendees: list[EventPerson] = Field(default_factory=list)
    participant_emails: list[str] = Field(default_factory=list)
    role: ParticipantRole
    response_status: str = "unknown"
    accepted: bool = False
    declined: bool = False
    resource_id: str | None = None
    transcript_evidence: bool = False
    has_recording: bool = False
    transcripts: list[TranscriptDescriptor] = Field(default_factory=list)
    meeting_id: uuid.UUID | None = None


class SyncCounters(BaseModel):
    """Counters reported by every sync pass, including partial failures."""

    events_fetched: int = 0
    online_events: int = 0
    events_without_organizer: int = 0
    without_join_url: int = 0
    organizers: int = 0
    resolved: int = 0
    unresolved: int = 0
    organizer_failures: int = 0
    failed_events: int = 0
    with_transcript: int = 0
    matched: int = 0
    persisted: int = 0
    persist_failures: int = 0
    duration_ms: float = 0.0


class SyncResult(BaseModel):
    """Result of one sync pass."""

    viewer: Viewer
    window: SyncWindow
    filters: SyncFilters
    meetings: list[MatchedMeeting] = Field(default_factory=list)
    counters: SyncCounters = Field(default_factory=SyncCounters)
