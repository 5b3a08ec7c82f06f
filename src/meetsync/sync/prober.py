"""Transcript Prober: does a conferencing resource have transcripts?"""

from __future__ import annotations

import structlog

from src.meetsync.graph.exceptions import GraphNotFoundError
from src.meetsync.meetings.schemas import TranscriptDescriptor
from src.meetsync.sync.protocols import TranscriptProvider

logger = structlog.get_logger(__name__)


class TranscriptProber:
    """Presence checks for transcripts and recordings.

    "No transcripts yet" and "resource has no transcript capability"
    (404) both come back as an empty list. Other provider errors
    propagate as probe failures.
    """

    def __init__(self, transcripts: TranscriptProvider) -> None:
        self._transcripts = transcripts

    async def probe(
        self, organizer_id: str, resource_id: str
    ) -> list[TranscriptDescriptor]:
        try:
            descriptors = await self._transcripts.list_transcripts(organizer_id, resource_id)
        except GraphNotFoundError:
            logger.debug("transcripts_not_supported", resource_id=resource_id)
            return []
        logger.debug("transcripts_probed", resource_id=resource_id, count=len(descriptors))
        return descriptors

    async def probe_recording(self, organizer_id: str, resource_id: str) -> bool:
        try:
            recordings = await self._transcripts.list_recordings(organizer_id, resource_id)
        except GraphNotFoundError:
            return False
        return bool(recordings)
