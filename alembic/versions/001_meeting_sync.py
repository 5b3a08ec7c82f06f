"""Create meeting-sync tables.

Revision ID: 001_meeting_sync
Revises:
Create Date: 2026-10-18

Creates the reconciled meeting store:
- meetings: one row per external event id / conferencing-resource id
- participants: people keyed by lower-cased email
- meeting_participants: (meeting, participant) links with role/response
- transcript_segments: parsed caption blocks of imported transcripts

No foreign key constraints (application-level referential integrity via
repository).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_meeting_sync"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── meetings table ───────────────────────────────────────────────────

    op.create_table(
        "meetings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("external_event_id", sa.String(500), nullable=False),
        sa.Column("resource_id", sa.String(500), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("organizer_email", sa.String(320), nullable=True),
        sa.Column("join_url", sa.String(2000), nullable=True),
        sa.Column("has_transcript", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_recording", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("transcript_source", sa.String(50), nullable=True),
        sa.Column("transcript_raw", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("full_transcript", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_meetings"),
        sa.UniqueConstraint("external_event_id", name="uq_meetings_external_event_id"),
        sa.UniqueConstraint("resource_id", name="uq_meetings_resource_id"),
    )
    op.create_index("ix_meetings_organizer_email", "meetings", ["organizer_email"])

    # ── participants table ───────────────────────────────────────────────

    op.create_table(
        "participants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("display_name", sa.String(500), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_participants"),
        sa.UniqueConstraint("email", name="uq_participants_email"),
    )

    # ── meeting_participants table ───────────────────────────────────────

    op.create_table(
        "meeting_participants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("meeting_id", UUID(as_uuid=True), nullable=False),
        sa.Column("participant_id", UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("response_status", sa.String(50), nullable=True),
        sa.Column("present", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id", name="pk_meeting_participants"),
        sa.UniqueConstraint(
            "meeting_id",
            "participant_id",
            name="uq_meeting_participants_meeting_participant",
        ),
    )
    op.create_index(
        "ix_meeting_participants_meeting_id", "meeting_participants", ["meeting_id"]
    )
    op.create_index(
        "ix_meeting_participants_participant_id",
        "meeting_participants",
        ["participant_id"],
    )

    # ── transcript_segments table ────────────────────────────────────────

    op.create_table(
        "transcript_segments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("meeting_id", UUID(as_uuid=True), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("start_ms", sa.Integer(), nullable=False),
        sa.Column("end_ms", sa.Integer(), nullable=False),
        sa.Column("speaker", sa.String(300), nullable=True),
        sa.Column("text", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_transcript_segments"),
    )
    op.create_index(
        "ix_transcript_segments_meeting_id", "transcript_segments", ["meeting_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_transcript_segments_meeting_id", table_name="transcript_segments")
    op.drop_table("transcript_segments")
    op.drop_index("ix_meeting_participants_participant_id", table_name="meeting_participants")
    op.drop_index("ix_meeting_participants_meeting_id", table_name="meeting_participants")
    op.drop_table("meeting_participants")
    op.drop_table("participants")
    op.drop_index("ix_meetings_organizer_email", table_name="meetings")
    op.drop_table("meetings")
