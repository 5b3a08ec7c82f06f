#!/usr/bin/env python3
"""Run one meeting sync pass from the command line or a scheduler.

Usage:
    uv run python scripts/run_sync.py
    uv run python scripts/run_sync.py --days 30 --only-with-transcripts --limit 50
    uv run python scripts/run_sync.py --no-persist --json
    uv run python scripts/run_sync.py --import-transcripts

The delegated token of the account to sync is read from MEETSYNC_DELEGATED_TOKEN.
Graph app credentials and DATABASE_URL come from the environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.meetsync.api.middleware.logging import configure_structlog  # noqa: E402
from src.meetsync.config import get_settings  # noqa: E402
from src.meetsync.core.database import close_db, get_session, init_db  # noqa: E402
from src.meetsync.graph.auth import GraphCredentialProvider  # noqa: E402
from src.meetsync.graph.exceptions import CredentialError  # noqa: E402
from src.meetsync.meetings.repository import MeetingRepository  # noqa: E402
from src.meetsync.meetings.schemas import RoleFilter, SyncFilters, SyncWindow  # noqa: E402
from src.meetsync.sync.exceptions import SyncError  # noqa: E402
from src.meetsync.sync.service import build_sync_service  # noqa: E402

logger = structlog.get_logger(__name__)

TOKEN_ENV = "MEETSYNC_DELEGATED_TOKEN"


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_structlog()

    token = os.environ.get(TOKEN_ENV)
    credentials = GraphCredentialProvider(
        tenant_id=settings.GRAPH_TENANT_ID,
        client_id=settings.GRAPH_CLIENT_ID,
        client_secret=settings.GRAPH_CLIENT_SECRET,
        delegated_token_source=lambda: token,
        authority_url=settings.GRAPH_AUTHORITY_URL,
        timeout=settings.GRAPH_TIMEOUT,
    )

    repository = None
    if args.persist:
        await init_db()
        repository = MeetingRepository(session_factory=get_session)

    service = build_sync_service(settings, credentials, repository)

    window = None
    if args.days:
        end = datetime.now(timezone.utc)
        window = SyncWindow(start=end - timedelta(days=args.days), end=end)

    filters = SyncFilters(
        role=RoleFilter(args.role),
        only_with_transcripts=args.only_with_transcripts,
        limit=args.limit,
        persist=args.persist,
    )

    try:
        try:
            result = await service.run(window, filters)
        except (CredentialError, SyncError) as exc:
            logger.error("sync_failed", error=str(exc))
            print(f"Sync failed: {exc}", file=sys.stderr)
            return 1

        if args.json:
            print(result.model_dump_json(indent=2))
        else:
            c = result.counters
            print(f"Viewer:            {result.viewer.email}")
            print(f"Events fetched:    {c.events_fetched}")
            print(f"Online meetings:   {c.online_events}")
            print(f"Organizers:        {c.organizers}")
            print(f"With transcript:   {c.with_transcript}")
            print(f"Matched:           {c.matched}")
            print(f"Persisted:         {c.persisted} ({c.persist_failures} failed)")
            print(f"Organizer errors:  {c.organizer_failures}")
            print(f"Duration:          {c.duration_ms / 1000:.1f}s")

        if args.import_transcripts and service.importer is not None:
            imported = await import_transcripts(service.importer, result.meetings)
            print(f"Transcripts imported: {imported}")
    finally:
        if repository is not None:
            await close_db()

    return 0


async def import_transcripts(importer, meetings) -> int:
    """Import transcripts of persisted meetings; one failure skips one meeting."""
    imported = 0
    for meeting in meetings:
        if meeting.meeting_id is None or not meeting.transcript_evidence:
            continue
        try:
            stored = await importer.import_meeting(meeting.meeting_id)
        except Exception as exc:
            logger.warning(
                "transcript_import_failed",
                meeting_id=str(meeting.meeting_id),
                error=str(exc),
            )
            continue
        if stored is not None:
            imported += 1
    return imported


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one meeting sync pass")
    parser.add_argument("--days", type=int, default=None, help="Trailing window in days")
    parser.add_argument(
        "--role",
        choices=[r.value for r in RoleFilter],
        default=RoleFilter.ALL.value,
        help="Keep meetings where the viewer has this role",
    )
    parser.add_argument("--only-with-transcripts", action="store_true")
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--no-persist", dest="persist", action="store_false")
    parser.add_argument("--import-transcripts", action="store_true",
                        help="Download and store transcripts after syncing")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    args = parser.parse_args()

    if args.import_transcripts and not args.persist:
        parser.error("--import-transcripts requires persistence")
    if args.days is not None and args.days <= 0:
        parser.error("--days must be positive")

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
