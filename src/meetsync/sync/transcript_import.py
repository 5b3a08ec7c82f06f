"""Transcript import: download, parse, and store a meeting's transcript.

Runs after a sync pass, for meetings whose stored descriptor payload says
a transcript exists. Re-importing replaces the stored segments.
"""

from __future__ import annotations

import uuid

import structlog

from src.meetsync.meetings.repository import MeetingRepository
from src.meetsync.meetings.schemas import TranscriptDescriptor
from src.meetsync.sync.protocols import ConferencingProvider, TranscriptProvider
from src.meetsync.sync.vtt import parse_vtt_segments, segments_to_text

logger = structlog.get_logger(__name__)


class TranscriptImporter:
    """Imports the first transcript of a persisted meeting.

    Args:
        repository: MeetingRepository holding the meeting.
        conferencing: Resolves the organizer's directory id.
        transcripts: Downloads transcript content.
    """

    def __init__(
        self,
        repository: MeetingRepository,
        conferencing: ConferencingProvider,
        transcripts: TranscriptProvider,
    ) -> None:
        self._repository = repository
        self._conferencing = conferencing
        self._transcripts = transcripts

    async def import_meeting(self, meeting_id: uuid.UUID) -> int | None:
        """Import the transcript of one meeting.

        Returns:
            Number of stored segments, or None when the meeting has no
            resource id, no organizer, or no stored descriptor.

        Raises:
            ValueError: If the meeting does not exist.
        """
        meeting = await self._repository.get_meeting(str(meeting_id))
        if meeting is None:
            raise ValueError(f"Meeting not found: id={meeting_id}")

        if not (meeting.resource_id and meeting.organizer_email and meeting.transcript_raw):
            logger.info("transcript_import_skipped", meeting_id=str(meeting_id))
            return None

        organizer_id = await self._conferencing.resolve_organizer_id(meeting.organizer_email)
        if organizer_id is None:
            logger.info(
                "transcript_import_skipped",
                meeting_id=str(meeting_id),
                reason="organizer_not_found",
            )
            return None

        descriptor = TranscriptDescriptor.model_validate(meeting.transcript_raw[0])
        content = await self._transcripts.fetch_transcript_content(
            organizer_id, meeting.resource_id, descriptor
        )

        segments = parse_vtt_segments(content)
        stored = await self._repository.replace_transcript_segments(
            meeting.id, segments, segments_to_text(segments) or None
        )
        logger.info(
            "transcript_imported",
            meeting_id=str(meeting_id),
            transcript_id=descriptor.id,
            segments=stored,
        )
        return stored
