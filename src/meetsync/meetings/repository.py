"""Meeting repository -- async upserts and lookups for all meeting entities.

Provides MeetingRepository with the session_factory callable pattern.
Every write is an upsert keyed on a stable unique field (external event id,
conferencing-resource id, lower-cased email, or the meeting/participant
pair), so a second reconciliation over unchanged data only refreshes
fields and never adds rows.

Upserts are select-then-insert-or-update inside one session. An insert
that loses a race against a concurrent sync (IntegrityError on the unique
key) is rolled back and retried once as an update.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.meetsync.meetings.models import (
    MeetingModel,
    MeetingParticipantModel,
    ParticipantModel,
    TranscriptSegmentModel,
)
from src.meetsync.meetings.schemas import (
    Meeting,
    MeetingParticipant,
    MeetingUpsert,
    Participant,
    ParticipantRole,
    TranscriptSegment,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    return Meeting(
        id=model.id,
        external_event_id=model.external_event_id,
        resource_id=model.resource_id,
        title=model.title,
        start_at=model.start_at,
        end_at=model.end_at,
        organizer_email=model.organizer_email,
        join_url=model.join_url,
        has_transcript=model.has_transcript,
        has_recording=model.has_recording,
        transcript_source=model.transcript_source,
        transcript_raw=list(model.transcript_raw or []),
        full_transcript=model.full_transcript,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
    )


def _model_to_participant(model: ParticipantModel) -> Participant:
    return Participant(
        id=model.id,
        email=model.email,
        display_name=model.display_name,
    )


def _model_to_link(model: MeetingParticipantModel) -> MeetingParticipant:
    return MeetingParticipant(
        id=model.id,
        meeting_id=model.meeting_id,
        participant_id=model.participant_id,
        role=ParticipantRole(model.role),
        response_status=model.response_status,
        present=model.present,
    )


def _model_to_segment(model: TranscriptSegmentModel) -> TranscriptSegment:
    return TranscriptSegment(
        start_ms=model.start_ms,
        end_ms=model.end_ms,
        speaker=model.speaker,
        text=model.text,
    )


def _apply_meeting_fields(model: MeetingModel, data: MeetingUpsert) -> None:
    """Copy refreshable fields onto a meeting row."""
    model.title = data.title
    model.start_at = data.start_at
    model.end_at = data.end_at
    model.organizer_email = data.organizer_email
    model.join_url = data.join_url
    model.has_transcript = data.has_transcript
    model.has_recording = data.has_recording
    model.transcript_source = data.transcript_source
    model.transcript_raw = list(data.transcript_raw)


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """Async upsert and lookup operations for meetings and participants.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Meetings ─────────────────────────────────────────────────────────

    async def upsert_meeting(self, data: MeetingUpsert) -> Meeting:
        """Insert or refresh a meeting row.

        Keyed by conferencing-resource id when known, else by external
        event id. A row first stored under its event id (resource not yet
        resolved) is found by event id and gains the resource id.

        When the resource id and the event id point at two different rows
        (occurrences of a series stored one row each while unresolved),
        the event row is merged into the resource row in the same
        session, so each key keeps naming at most one row.

        Args:
            data: MeetingUpsert with the latest observed field values.

        Returns:
            Meeting with all persisted fields.
        """
        for attempt in range(2):
            async for session in self._session_factory():
                by_resource, by_event = await self._find_meeting_for_upsert(session, data)
                model = by_resource or by_event
                created = model is None
                if created:
                    model = MeetingModel(
                        id=uuid.uuid4(),
                        external_event_id=data.external_event_id,
                        resource_id=data.resource_id,
                    )
                    session.add(model)
                else:
                    if (
                        by_resource is not None
                        and by_event is not None
                        and by_resource.id != by_event.id
                    ):
                        await self._merge_meeting(session, source=by_event, target=by_resource)
                    self._rekey_meeting(model, data)
                    model.updated_at = datetime.now(timezone.utc)

                _apply_meeting_fields(model, data)

                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if attempt == 0:
                        logger.info(
                            "meeting_upsert_conflict_retry",
                            external_event_id=data.external_event_id,
                            resource_id=data.resource_id,
                        )
                        break
                    raise

                await session.refresh(model)
                return _model_to_meeting(model)

        raise RuntimeError("unreachable: meeting upsert retry exhausted")

    @staticmethod
    async def _find_meeting_for_upsert(
        session: AsyncSession, data: MeetingUpsert
    ) -> tuple[MeetingModel | None, MeetingModel | None]:
        """Rows currently holding the resource id and the event id."""
        by_resource: MeetingModel | None = None
        if data.resource_id:
            result = await session.execute(
                select(MeetingModel).where(MeetingModel.resource_id == data.resource_id)
            )
            by_resource = result.scalar_one_or_none()

        result = await session.execute(
            select(MeetingModel).where(
                MeetingModel.external_event_id == data.external_event_id
            )
        )
        return by_resource, result.scalar_one_or_none()

    @staticmethod
    async def _merge_meeting(
        session: AsyncSession, source: MeetingModel, target: MeetingModel
    ) -> None:
        """Fold ``source`` into ``target`` and delete ``source``.

        Participant links move unless the target already links the same
        participant. Segments move only when the target has none. The
        delete is flushed before the caller re-keys ``target`` onto the
        freed event id.
        """
        target_participants = select(MeetingParticipantModel.participant_id).where(
            MeetingParticipantModel.meeting_id == target.id
        )
        await session.execute(
            update(MeetingParticipantModel)
            .where(
                MeetingParticipantModel.meeting_id == source.id,
                MeetingParticipantModel.participant_id.not_in(target_participants),
            )
            .values(meeting_id=target.id)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            delete(MeetingParticipantModel)
            .where(MeetingParticipantModel.meeting_id == source.id)
            .execution_options(synchronize_session=False)
        )

        result = await session.execute(
            select(func.count())
            .select_from(TranscriptSegmentModel)
            .where(TranscriptSegmentModel.meeting_id == target.id)
        )
        if result.scalar_one() == 0:
            await session.execute(
                update(TranscriptSegmentModel)
                .where(TranscriptSegmentModel.meeting_id == source.id)
                .values(meeting_id=target.id)
                .execution_options(synchronize_session=False)
            )
            if target.full_transcript is None:
                target.full_transcript = source.full_transcript
        else:
            await session.execute(
                delete(TranscriptSegmentModel)
                .where(TranscriptSegmentModel.meeting_id == source.id)
                .execution_options(synchronize_session=False)
            )

        await session.delete(source)
        await session.flush()
        logger.info(
            "meeting_rows_merged",
            meeting_id=str(target.id),
            merged_meeting_id=str(source.id),
            external_event_id=source.external_event_id,
        )

    @staticmethod
    def _rekey_meeting(model: MeetingModel, data: MeetingUpsert) -> None:
        """Align the unique keys of an existing row with the latest observation.

        The resource id is only ever set, never cleared: a later pass that
        fails to resolve keeps the previously resolved id. The event id
        follows the latest occurrence observed for the resource.
        """
        if data.resource_id and model.resource_id != data.resource_id:
            if model.resource_id is not None:
                logger.warning(
                    "meeting_resource_id_changed",
                    meeting_id=str(model.id),
                    old_resource_id=model.resource_id,
                    new_resource_id=data.resource_id,
                )
            model.resource_id = data.resource_id
        model.external_event_id = data.external_event_id

    async def get_meeting(self, meeting_id: str) -> Meeting | None:
        """Get a meeting by its local UUID.

        Args:
            meeting_id: Meeting UUID string.

        Returns:
            Meeting if found, None otherwise.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingModel).where(MeetingModel.id == uuid.UUID(meeting_id))
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def get_meeting_by_event_id(self, external_event_id: str) -> Meeting | None:
        """Point lookup by external calendar event id."""
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingModel).where(
                    MeetingModel.external_event_id == external_event_id
                )
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def get_meeting_by_resource_id(self, resource_id: str) -> Meeting | None:
        """Point lookup by conferencing-resource id."""
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingModel).where(MeetingModel.resource_id == resource_id)
            )
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_meeting(model)

    async def list_meetings_with_transcript(self, limit: int = 100) -> list[Meeting]:
        """Meetings with transcript evidence, most recent first."""
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingModel)
                .where(MeetingModel.has_transcript.is_(True))
                .order_by(MeetingModel.start_at.desc())
                .limit(limit)
            )
            return [_model_to_meeting(m) for m in result.scalars().all()]

    # ── Participants ─────────────────────────────────────────────────────

    async def upsert_participant(self, email: str, display_name: str) -> Participant:
        """Insert a participant or refresh its display name.

        Args:
            email: Email address; normalized to lower case as the key.
            display_name: Latest observed display name.

        Returns:
            Persisted Participant.
        """
        key = email.strip().lower()
        if not key:
            raise ValueError("participant email must not be empty")

        for attempt in range(2):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ParticipantModel).where(ParticipantModel.email == key)
                )
                model = result.scalar_one_or_none()
                if model is None:
                    model = ParticipantModel(
                        id=uuid.uuid4(), email=key, display_name=display_name
                    )
                    session.add(model)
                else:
                    model.display_name = display_name

                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if attempt == 0:
                        break
                    raise

                await session.refresh(model)
                return _model_to_participant(model)

        raise RuntimeError("unreachable: participant upsert retry exhausted")

    async def upsert_meeting_participant(
        self,
        meeting_id: uuid.UUID,
        participant_id: uuid.UUID,
        role: ParticipantRole,
        response_status: str | None,
        present: bool = True,
    ) -> MeetingParticipant:
        """Insert or overwrite the (meeting, participant) link."""
        for attempt in range(2):
            async for session in self._session_factory():
                result = await session.execute(
                    select(MeetingParticipantModel).where(
                        MeetingParticipantModel.meeting_id == meeting_id,
                        MeetingParticipantModel.participant_id == participant_id,
                    )
                )
                model = result.scalar_one_or_none()
                if model is None:
                    model = MeetingParticipantModel(
                        id=uuid.uuid4(),
                        meeting_id=meeting_id,
                        participant_id=participant_id,
                    )
                    session.add(model)

                model.role = role.value
                model.response_status = response_status
                model.present = present

                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if attempt == 0:
                        break
                    raise

                await session.refresh(model)
                return _model_to_link(model)

        raise RuntimeError("unreachable: meeting participant upsert retry exhausted")

    async def list_meeting_participants(
        self, meeting_id: uuid.UUID
    ) -> list[tuple[Participant, MeetingParticipant]]:
        """Participants linked to a meeting with their link rows."""
        async for session in self._session_factory():
            result = await session.execute(
                select(ParticipantModel, MeetingParticipantModel)
                .join(
                    MeetingParticipantModel,
                    MeetingParticipantModel.participant_id == ParticipantModel.id,
                )
                .where(MeetingParticipantModel.meeting_id == meeting_id)
                .order_by(ParticipantModel.email)
            )
            return [
                (_model_to_participant(p), _model_to_link(link))
                for p, link in result.all()
            ]

    # ── Transcript Content ───────────────────────────────────────────────

    async def replace_transcript_segments(
        self,
        meeting_id: uuid.UUID,
        segments: list[TranscriptSegment],
        full_text: str | None,
    ) -> int:
        """Replace a meeting's stored segments and plain-text transcript.

        Delete-then-insert in a single commit, so re-importing the same
        transcript leaves the same rows behind.

        Returns:
            Number of segments stored.
        """
        async for session in self._session_factory():
            await session.execute(
                delete(TranscriptSegmentModel).where(
                    TranscriptSegmentModel.meeting_id == meeting_id
                )
            )
            session.add_all(
                TranscriptSegmentModel(
                    id=uuid.uuid4(),
                    meeting_id=meeting_id,
                    position=position,
                    start_ms=segment.start_ms,
                    end_ms=segment.end_ms,
                    speaker=segment.speaker,
                    text=segment.text,
                )
                for position, segment in enumerate(segments)
            )

            result = await session.execute(
                select(MeetingModel).where(MeetingModel.id == meeting_id)
            )
            meeting = result.scalar_one_or_none()
            if meeting is None:
                await session.rollback()
                raise ValueError(f"Meeting not found: id={meeting_id}")
            meeting.full_transcript = full_text
            meeting.updated_at = datetime.now(timezone.utc)

            await session.commit()
            return len(segments)

    async def get_transcript_segments(
        self, meeting_id: uuid.UUID
    ) -> list[TranscriptSegment]:
        async for session in self._session_factory():
            result = await session.execute(
                select(TranscriptSegmentModel)
                .where(TranscriptSegmentModel.meeting_id == meeting_id)
                .order_by(TranscriptSegmentModel.position)
            )
            return [_model_to_segment(m) for m in result.scalars().all()]

    # ── Maintenance ──────────────────────────────────────────────────────

    async def count_rows(self) -> dict[str, int]:
        """Row counts per table (used by scripts and health reporting)."""
        async for session in self._session_factory():
            counts: dict[str, int] = {}
            for name, model in (
                ("meetings", MeetingModel),
                ("participants", ParticipantModel),
                ("meeting_participants", MeetingParticipantModel),
                ("transcript_segments", TranscriptSegmentModel),
            ):
                result = await session.execute(select(func.count()).select_from(model))
                counts[name] = int(result.scalar_one())
            return counts

    async def delete_meetings_without_transcript(self) -> int:
        """Cleanup policy: drop meetings lacking transcript evidence or a source tag.

        Also removes their participant links and segments. Participants
        themselves are never deleted.

        Returns:
            Number of meetings deleted.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingModel.id).where(
                    or_(
                        MeetingModel.has_transcript.is_(False),
                        MeetingModel.transcript_source.is_(None),
                    )
                )
            )
            meeting_ids = list(result.scalars().all())
            if not meeting_ids:
                return 0

            await session.execute(
                delete(MeetingParticipantModel).where(
                    MeetingParticipantModel.meeting_id.in_(meeting_ids)
                )
            )
            await session.execute(
                delete(TranscriptSegmentModel).where(
                    TranscriptSegmentModel.meeting_id.in_(meeting_ids)
                )
            )
            await session.execute(
                delete(MeetingModel).where(MeetingModel.id.in_(meeting_ids))
            )
            await session.commit()

            logger.info("meetings_cleaned_up", deleted=len(meeting_ids))
            return len(meeting_ids)
