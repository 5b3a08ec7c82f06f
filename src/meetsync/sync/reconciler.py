"""Persistence Reconciler: idempotent upsert of one matched event.

Writes the Meeting row, then one Participant and one MeetingParticipant
row per distinct person on the event. Each write is keyed on a stable
unique field, so replaying the same event changes field values at most.
"""

from __future__ import annotations

import uuid

import structlog

from src.meetsync.meetings.schemas import (
    TRANSCRIPT_SOURCE_GRAPH,
    CalendarEvent,
    MeetingUpsert,
    ParticipantObservation,
    ParticipantRole,
    TranscriptDescriptor,
)
from src.meetsync.sync.protocols import MeetingStore

logger = structlog.get_logger(__name__)

UNTITLED_MEETING = "(untitled)"
ORGANIZER_RESPONSE = "accepted"


def observe_participants(event: CalendarEvent) -> list[ParticipantObservation]:
    """People on an event, organizer first, one entry per lower-cased email.

    Attendees without an email are skipped. An attendee entry repeating
    the organizer's address does not demote the organizer.
    """
    observations: dict[str, ParticipantObservation] = {}

    organizer = event.organizer_email
    if organizer:
        observations[organizer] = ParticipantObservation(
            email=organizer,
            display_name=event.organizer.name or organizer,
            role=ParticipantRole.ORGANIZER,
            response_status=ORGANIZER_RESPONSE,
        )

    for attendee in event.attendees:
        email = (attendee.email or "").strip().lower()
        if not email or email in observations:
            continue
        observations[email] = ParticipantObservation(
            email=email,
            display_name=attendee.name or email,
            role=ParticipantRole.ATTENDEE,
            response_status=attendee.response,
        )

    return list(observations.values())


class PersistenceReconciler:
    """Upserts matched events into the meeting store.

    Args:
        store: Repository implementing the MeetingStore contract.
    """

    def __init__(self, store: MeetingStore) -> None:
        self._store = store

    async def upsert(
        self,
        event: CalendarEvent,
        resource_id: str | None,
        transcripts: list[TranscriptDescriptor],
        has_recording: bool = False,
        participants: list[ParticipantObservation] | None = None,
    ) -> uuid.UUID:
        """Reconcile one event and return the local meeting id.

        Args:
            event: Source calendar event.
            resource_id: Resolved conferencing-resource id, if any.
            transcripts: Transcript descriptors found for the resource.
            has_recording: Recording evidence for the resource.
            participants: People to link; derived from the event when None.
        """
        meeting = await self._store.upsert_meeting(
            MeetingUpsert(
                external_event_id=event.id,
                resource_id=resource_id,
                title=event.subject or UNTITLED_MEETING,
                start_at=event.start,
                end_at=event.end,
                organizer_email=event.organizer_email,
                join_url=event.join_url,
                has_transcript=bool(transcripts),
                has_recording=has_recording,
                transcript_source=TRANSCRIPT_SOURCE_GRAPH,
                transcript_raw=[
                    t.model_dump(mode="json", by_alias=True) for t in transcripts
                ],
            )
        )

        if participants is None:
            participants = observe_participants(event)

        for person in participants:
            participant = await self._store.upsert_participant(
                person.email, person.display_name
            )
            await self._store.upsert_meeting_participant(
                meeting.id,
                participant.id,
                person.role,
                person.response_status,
                present=person.present,
            )

        logger.debug(
            "meeting_reconciled",
            meeting_id=str(meeting.id),
            event_id=event.id,
            participants=len(participants),
        )
        return meeting.id
