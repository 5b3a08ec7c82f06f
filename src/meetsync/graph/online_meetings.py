"""Conferencing adapter: organizer lookup and online-meeting search by join URL."""

from __future__ import annotations

import structlog

from src.meetsync.graph.client import GraphClient
from src.meetsync.graph.exceptions import GraphNotFoundError
from src.meetsync.sync.join_key import escape_odata_string

logger = structlog.get_logger(__name__)


class GraphConferencingProvider:
    """Conferencing Provider over ``/users/{id}/onlineMeetings``.

    Requires an application-token client: online meetings of other
    organizers are not visible to the caller's delegated token.
    """

    def __init__(self, client: GraphClient) -> None:
        self._client = client

    async def resolve_organizer_id(self, email: str) -> str | None:
        """Directory object id for an organizer email, None if not in the tenant."""
        try:
            body = await self._client.get_json(
                f"/users/{email}", params={"$select": "id"}
            )
        except GraphNotFoundError:
            logger.info("graph.organizer_not_found", organizer=email)
            return None
        return body.get("id")

    async def find_resource_by_join_url(
        self, organizer_id: str, exact: bool, url_or_prefix: str
    ) -> str | None:
        """First online meeting whose join URL equals (or starts with) the value.

        Args:
            organizer_id: Directory id of the meeting organizer.
            exact: ``joinWebUrl eq`` when True, ``startswith`` otherwise.
            url_or_prefix: Unescaped join URL or prefix.

        Returns:
            The online meeting id, or None when nothing matches.
        """
        escaped = escape_odata_string(url_or_prefix)
        odata_filter = (
            f"joinWebUrl eq '{escaped}'"
            if exact
            else f"startswith(joinWebUrl,'{escaped}')"
        )
        items, _ = await self._client.get_page(
            f"/users/{organizer_id}/onlineMeetings",
            params={"$filter": odata_filter},
        )
        if not items:
            return None
        return items[0].get("id")
