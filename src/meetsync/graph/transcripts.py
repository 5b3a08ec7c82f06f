"""Transcript adapter: transcript and recording collections of an online meeting."""

from __future__ import annotations

from typing import Any

import structlog

from src.meetsync.graph.client import GraphClient
from src.meetsync.meetings.schemas import TranscriptDescriptor

logger = structlog.get_logger(__name__)


class GraphTranscriptProvider:
    """Transcript Provider over ``/users/{id}/onlineMeetings/{id}/transcripts``.

    Not-found responses propagate as GraphNotFoundError; the prober
    decides that they mean "no transcript".
    """

    def __init__(self, client: GraphClient) -> None:
        self._client = client

    def _meeting_path(self, organizer_id: str, resource_id: str) -> str:
        return f"/users/{organizer_id}/onlineMeetings/{resource_id}"

    async def list_transcripts(
        self, organizer_id: str, resource_id: str
    ) -> list[TranscriptDescriptor]:
        """Transcript descriptors in provider order (single page)."""
        items, _ = await self._client.get_page(
            f"{self._meeting_path(organizer_id, resource_id)}/transcripts"
        )
        descriptors = []
        for item in items:
            item.setdefault("meetingId", resource_id)
            descriptors.append(TranscriptDescriptor.model_validate(item))
        return descriptors

    async def list_recordings(
        self, organizer_id: str, resource_id: str
    ) -> list[dict[str, Any]]:
        """At most one recording item; only presence matters."""
        items, _ = await self._client.get_page(
            f"{self._meeting_path(organizer_id, resource_id)}/recordings",
            params={"$top": 1},
        )
        return items

    async def fetch_transcript_content(
        self,
        organizer_id: str,
        resource_id: str,
        descriptor: TranscriptDescriptor,
    ) -> str:
        """Download a transcript as WebVTT text."""
        path = descriptor.content_url or (
            f"{self._meeting_path(organizer_id, resource_id)}"
            f"/transcripts/{descriptor.id}/content"
        )
        content = await self._client.get_text(path, params={"$format": "text/vtt"})
        logger.info(
            "graph.transcript_downloaded",
            resource_id=resource_id,
            transcript_id=descriptor.id,
            size=len(content),
        )
        return content
