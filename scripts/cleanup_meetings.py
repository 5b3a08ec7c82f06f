#!/usr/bin/env python3
"""Delete meetings without transcript evidence.

Usage:
    uv run python scripts/cleanup_meetings.py --dry-run
    uv run python scripts/cleanup_meetings.py --yes

Removes meetings whose transcript flag is false or whose source tag is
missing, with their participant links and transcript segments.
Participants are kept. Sync passes never delete; this job is the only
deletion path.

Reads DATABASE_URL from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

from src.meetsync.api.middleware.logging import configure_structlog  # noqa: E402
from src.meetsync.core.database import close_db, get_session, init_db  # noqa: E402
from src.meetsync.meetings.repository import MeetingRepository  # noqa: E402


async def cleanup(dry_run: bool) -> None:
    configure_structlog()
    await init_db()
    repository = MeetingRepository(session_factory=get_session)

    try:
        before = await repository.count_rows()
        print(f"Meetings before cleanup: {before['meetings']}")
        if dry_run:
            with_transcript = await repository.list_meetings_with_transcript(
                limit=before["meetings"] or 1
            )
            print(f"Would keep {len(with_transcript)} meeting(s) with transcripts")
            return

        deleted = await repository.delete_meetings_without_transcript()
        after = await repository.count_rows()
        print(f"Deleted:  {deleted}")
        print(f"Remaining meetings: {after['meetings']}")
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete meetings without transcripts")
    parser.add_argument("--dry-run", action="store_true", help="Report only")
    parser.add_argument("--yes", action="store_true", help="Confirm deletion")
    args = parser.parse_args()

    if not args.dry_run and not args.yes:
        parser.error("pass --yes to delete, or --dry-run to preview")

    asyncio.run(cleanup(args.dry_run))


if __name__ == "__main__":
    main()
