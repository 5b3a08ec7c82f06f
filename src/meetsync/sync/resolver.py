"""Conferencing-Resource Resolver: join URL to online-meeting id.

Two heuristics, in fixed order: exact join-URL equality, then a prefix
match on the URL without its query string. The provider sometimes adds
query parameters to the stored URL after the calendar event was
created, which only the prefix step recovers.
"""

from __future__ import annotations

import structlog

from src.meetsync.sync.join_key import strip_query
from src.meetsync.sync.protocols import ConferencingProvider

logger = structlog.get_logger(__name__)


class ConferencingResourceResolver:
    def __init__(self, conferencing: ConferencingProvider) -> None:
        self._conferencing = conferencing

    async def resolve(self, organizer_id: str, join_url: str) -> str | None:
        """Resource id for ``join_url``, or None when neither step matches.

        Provider errors propagate; "not found" is a normal None.
        """
        resource_id = await self._conferencing.find_resource_by_join_url(
            organizer_id, True, join_url
        )
        if resource_id:
            logger.debug("resource_resolved", organizer_id=organizer_id, match="exact")
            return resource_id

        prefix = strip_query(join_url)
        resource_id = await self._conferencing.find_resource_by_join_url(
            organizer_id, False, prefix
        )
        if resource_id:
            logger.debug("resource_resolved", organizer_id=organizer_id, match="prefix")
            return resource_id

        logger.info("resource_unresolved", organizer_id=organizer_id, join_url=prefix)
        return None
