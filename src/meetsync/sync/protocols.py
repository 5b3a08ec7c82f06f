"""Collaborator contracts consumed by the sync engine.

The Graph adapters in ``src.meetsync.graph`` and the repository in
``src.meetsync.meetings.repository`` satisfy these structurally; tests
substitute in-memory fakes.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Protocol

from src.meetsync.meetings.schemas import (
    CalendarEvent,
    Meeting,
    MeetingParticipant,
    MeetingUpsert,
    Participant,
    ParticipantRole,
    TranscriptDescriptor,
    Viewer,
)


class CredentialProvider(Protocol):
    async def get_delegated_token(self) -> str | None: ...

    async def get_application_token(self) -> str: ...


class CalendarProvider(Protocol):
    async def get_viewer(self) -> Viewer: ...

    async def list_events(
        self,
        principal: str,
        start: datetime,
        end: datetime,
        cursor: str | None = None,
    ) -> tuple[list[CalendarEvent], str | None]: ...


class ConferencingProvider(Protocol):
    async def resolve_organizer_id(self, email: str) -> str | None: ...

    async def find_resource_by_join_url(
        self, organizer_id: str, exact: bool, url_or_prefix: str
    ) -> str | None: ...


class TranscriptProvider(Protocol):
    async def list_transcripts(
        self, organizer_id: str, resource_id: str
    ) -> list[TranscriptDescriptor]: ...

    async def list_recordings(
        self, organizer_id: str, resource_id: str
    ) -> list[dict[str, Any]]: ...

    async def fetch_transcript_content(
        self, organizer_id: str, resource_id: str, descriptor: TranscriptDescriptor
    ) -> str: ...


class MeetingStore(Protocol):
    async def upsert_meeting(self, data: MeetingUpsert) -> Meeting: ...

    async def upsert_participant(self, email: str, display_name: str) -> Participant: ...

    async def upsert_meeting_participant(
        self,
        meeting_id: uuid.UUID,
        participant_id: uuid.UUID,
        role: ParticipantRole,
        response_status: str | None,
        present: bool = True,
    ) -> MeetingParticipant: ...

    async def get_meeting_by_event_id(self, external_event_id: str) -> Meeting | None: ...

    async def get_meeting_by_resource_id(self, resource_id: str) -> Meeting | None: ...
