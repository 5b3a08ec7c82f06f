"""Meeting persistence models.

Four SQLAlchemy models sharing the meetsync declarative Base:
- MeetingModel: Canonical meeting row, upserted on external event id or
  conferencing-resource id (both unique)
- ParticipantModel: People keyed by lower-cased email
- MeetingParticipantModel: (meeting, participant) link with role/response
- TranscriptSegmentModel: Parsed caption blocks for an imported transcript

No foreign key constraints (application-level referential integrity via
repository).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.meetsync.core.database import Base


class MeetingModel(Base):
    """Meeting reconciled from a calendar event and its conferencing resource."""

    __tablename__ = "meetings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_event_id: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)
    resource_id: Mapped[str | None] = mapped_column(String(500), nullable=True, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    organizer_email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)
    join_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    has_transcript: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_recording: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    transcript_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transcript_raw: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    full_transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class ParticipantModel(Base):
    """Person observed as organizer or attendee."""

    __tablename__ = "participants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(500), nullable=False)


class MeetingParticipantModel(Base):
    """Meeting-to-participant link; role/response/presence are last-write-wins."""

    __tablename__ = "meeting_participants"
    __table_args__ = (
        UniqueConstraint(
            "meeting_id",
            "participant_id",
            name="uq_meeting_participants_meeting_participant",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    meeting_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    participant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    response_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    present: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class TranscriptSegmentModel(Base):
    """A parsed caption block belonging to a meeting transcript."""

    __tablename__ = "transcript_segments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    meeting_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    start_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    end_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    speaker: Mapped[str | None] = mapped_column(String(300), nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
