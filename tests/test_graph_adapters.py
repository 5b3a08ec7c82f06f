"""Tests for the Microsoft Graph adapters.

Covers GraphClient error mapping and paging, calendar event parsing,
organizer/online-meeting lookups, transcript collections, and the
credential provider's application-token cache. HTTP is mocked by
patching httpx.AsyncClient.get / post.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.meetsync.graph.auth import GraphCredentialProvider
from src.meetsync.graph.calendar import (
    GraphCalendarProvider,
    parse_graph_datetime,
    parse_graph_event,
)
from src.meetsync.graph.client import GraphClient
from src.meetsync.graph.exceptions import (
    CredentialError,
    GraphAPIError,
    GraphAuthError,
    GraphNotFoundError,
)
from src.meetsync.graph.online_meetings import GraphConferencingProvider
from src.meetsync.graph.transcripts import GraphTranscriptProvider
from src.meetsync.meetings.schemas import TranscriptDescriptor

BASE = "https://graph.test/v1.0"


async def _token() -> str:
    return "app-token"


def _client() -> GraphClient:
    return GraphClient(_token, base_url=BASE)


def _response(status_code: int, url: str = f"{BASE}/x", method: str = "GET", **kwargs):
    return httpx.Response(status_code, request=httpx.Request(method, url), **kwargs)


def _get_mock(*responses):
    if len(responses) == 1:
        return patch("httpx.AsyncClient.get", new_callable=AsyncMock, return_value=responses[0])
    return patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=list(responses))


def _graph_event(**overrides) -> dict:
    item = {
        "id": "AAMkAD-1",
        "subject": "Pipeline review",
        "start": {"dateTime": "2026-03-01T15:00:00.0000000", "timeZone": "UTC"},
        "end": {"dateTime": "2026-03-01T16:00:00.0000000", "timeZone": "UTC"},
        "organizer": {"emailAddress": {"name": "Alice", "address": "Alice@Contoso.com"}},
        "attendees": [
            {
                "emailAddress": {"name": "Vera Viewer", "address": "viewer@contoso.com"},
                "status": {"response": "accepted"},
            }
        ],
        "isOnlineMeeting": True,
        "onlineMeetingProvider": "teamsForBusiness",
        "onlineMeeting": {
            "joinUrl": "https://teams.microsoft.com/l/meetup-join/19%3ameeting_X/0",
            "conferenceId": "123456",
        },
        "webLink": "https://outlook.office365.com/owa/?itemid=AAMkAD-1",
        "location": {"displayName": "Microsoft Teams Meeting"},
        "responseStatus": {"response": "accepted"},
    }
    item.update(overrides)
    return item


# ── GraphClient ──────────────────────────────────────────────────────────────


class TestGraphClient:
    @pytest.mark.asyncio
    async def test_get_json_sends_bearer(self):
        with _get_mock(_response(200, json={"id": "u1"})) as mock_get:
            body = await _client().get_json("/me")

        assert body == {"id": "u1"}
        args, kwargs = mock_get.call_args
        assert args[0] == f"{BASE}/me"
        assert kwargs["headers"]["Authorization"] == "Bearer app-token"

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self):
        error_body = {"error": {"code": "ResourceNotFound", "message": "no such user"}}
        with _get_mock(_response(404, json=error_body)) as mock_get:
            with pytest.raises(GraphNotFoundError) as exc_info:
                await _client().get_json("/users/ghost@contoso.com")

        assert mock_get.call_count == 1
        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "ResourceNotFound"
        assert "no such user" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_forbidden_maps_to_auth_error(self):
        with _get_mock(_response(403, text="Forbidden")) as mock_get:
            with pytest.raises(GraphAuthError):
                await _client().get_json("/users/x/onlineMeetings")

        assert mock_get.call_count == 1

    @pytest.mark.asyncio
    async def test_client_error_is_plain_api_error(self):
        with _get_mock(_response(400, json={"error": {"code": "BadRequest"}})):
            with pytest.raises(GraphAPIError) as exc_info:
                await _client().get_json("/users/x/onlineMeetings")

        assert type(exc_info.value) is GraphAPIError
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_get_page_returns_next_link(self):
        body = {"value": [{"id": "1"}, {"id": "2"}], "@odata.nextLink": f"{BASE}/next?$skip=2"}
        with _get_mock(_response(200, json=body)) as mock_get:
            items, cursor = await _client().get_page("/items", params={"$top": 2})

        assert [i["id"] for i in items] == ["1", "2"]
        assert cursor == f"{BASE}/next?$skip=2"
        assert mock_get.call_args.kwargs["params"] == {"$top": 2}

    @pytest.mark.asyncio
    async def test_cursor_request_drops_params(self):
        with _get_mock(_response(200, json={"value": []})) as mock_get:
            items, cursor = await _client().get_page(
                f"{BASE}/next?$skip=2", params={"$top": 2}
            )

        assert items == []
        assert cursor is None
        assert mock_get.call_args.args[0] == f"{BASE}/next?$skip=2"
        assert mock_get.call_args.kwargs["params"] is None

    def test_url_joins_base_and_path(self):
        client = GraphClient(_token, base_url=f"{BASE}/")
        assert client.url("/me") == f"{BASE}/me"
        assert client.url("me") == f"{BASE}/me"
        assert client.url("https://other.test/x") == "https://other.test/x"


# ── Calendar ─────────────────────────────────────────────────────────────────


class TestCalendarParsing:
    def test_parse_event(self):
        event = parse_graph_event(_graph_event())

        assert event.id == "AAMkAD-1"
        assert event.organizer_email == "alice@contoso.com"
        assert event.join_url.endswith("meeting_X/0")
        assert event.conference_id == "123456"
        assert event.location == "Microsoft Teams Meeting"
        assert event.viewer_response == "accepted"
        assert event.attendees[0].response == "accepted"
        assert event.start == datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc)

    def test_legacy_online_meeting_url(self):
        event = parse_graph_event(
            _graph_event(onlineMeeting=None, onlineMeetingUrl="https://teams.microsoft.com/l/x")
        )
        assert event.join_url == "https://teams.microsoft.com/l/x"

    def test_missing_join_url_and_location(self):
        event = parse_graph_event(_graph_event(onlineMeeting=None, location={"displayName": ""}))
        assert event.join_url is None
        assert event.location is None

    def test_datetime_seven_fraction_digits(self):
        parsed = parse_graph_datetime(
            {"dateTime": "2026-03-01T09:30:00.1234567", "timeZone": "UTC"}
        )
        assert parsed.utcoffset() == timedelta(0)
        assert parsed.microsecond == 123456

    def test_datetime_unknown_zone_falls_back_to_utc(self):
        parsed = parse_graph_datetime(
            {"dateTime": "2026-03-01T09:30:00", "timeZone": "Pacific Standard Time"}
        )
        assert parsed.tzinfo is timezone.utc

    def test_datetime_missing(self):
        assert parse_graph_datetime(None) is None
        assert parse_graph_datetime({"timeZone": "UTC"}) is None


class TestCalendarProvider:
    @pytest.mark.asyncio
    async def test_first_page_query(self):
        body = {"value": [_graph_event(), {"subject": "no id"}], "@odata.nextLink": f"{BASE}/p2"}
        provider = GraphCalendarProvider(_client(), page_size=50, timezone_name="UTC")
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        end = datetime(2026, 3, 1, tzinfo=timezone.utc)

        with _get_mock(_response(200, json=body)) as mock_get:
            events, cursor = await provider.list_events("viewer-id", start, end)

        assert [e.id for e in events] == ["AAMkAD-1"]
        assert cursor == f"{BASE}/p2"
        args, kwargs = mock_get.call_args
        assert args[0] == f"{BASE}/users/viewer-id/calendarView"
        assert kwargs["params"]["startDateTime"] == "2026-01-01T00:00:00Z"
        assert kwargs["params"]["endDateTime"] == "2026-03-01T00:00:00Z"
        assert kwargs["params"]["$top"] == 50
        assert kwargs["params"]["$orderby"] == "start/dateTime desc"
        assert kwargs["headers"]["Prefer"] == 'outlook.timezone="UTC"'

    @pytest.mark.asyncio
    async def test_next_page_follows_cursor(self):
        provider = GraphCalendarProvider(_client())
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)

        with _get_mock(_response(200, json={"value": []})) as mock_get:
            events, cursor = await provider.list_events(
                "viewer-id", start, start + timedelta(days=1), cursor=f"{BASE}/p2"
            )

        assert events == [] and cursor is None
        assert mock_get.call_args.args[0] == f"{BASE}/p2"

    @pytest.mark.asyncio
    async def test_get_viewer_prefers_upn(self):
        me = {"id": "u1", "userPrincipalName": "vera@contoso.com", "mail": "v@contoso.com"}
        with _get_mock(_response(200, json=me)):
            viewer = await GraphCalendarProvider(_client()).get_viewer()

        assert viewer.id == "u1"
        assert viewer.email == "vera@contoso.com"


# ── Conferencing ─────────────────────────────────────────────────────────────


class TestConferencingProvider:
    @pytest.mark.asyncio
    async def test_resolve_organizer(self):
        with _get_mock(_response(200, json={"id": "alice-id"})):
            organizer_id = await GraphConferencingProvider(_client()).resolve_organizer_id(
                "alice@contoso.com"
            )
        assert organizer_id == "alice-id"

    @pytest.mark.asyncio
    async def test_unknown_organizer_is_none(self):
        with _get_mock(_response(404, json={"error": {"code": "Request_ResourceNotFound"}})):
            organizer_id = await GraphConferencingProvider(_client()).resolve_organizer_id(
                "guest@fabrikam.com"
            )
        assert organizer_id is None

    @pytest.mark.asyncio
    async def test_exact_filter_escapes_quotes(self):
        url = "https://teams.microsoft.com/l/meetup-join/o'brien"
        with _get_mock(_response(200, json={"value": [{"id": "res-1"}, {"id": "res-2"}]})) as m:
            resource_id = await GraphConferencingProvider(_client()).find_resource_by_join_url(
                "alice-id", True, url
            )

        assert resource_id == "res-1"
        assert m.call_args.args[0] == f"{BASE}/users/alice-id/onlineMeetings"
        assert m.call_args.kwargs["params"]["$filter"] == (
            "joinWebUrl eq 'https://teams.microsoft.com/l/meetup-join/o''brien'"
        )

    @pytest.mark.asyncio
    async def test_prefix_filter_and_no_match(self):
        with _get_mock(_response(200, json={"value": []})) as m:
            resource_id = await GraphConferencingProvider(_client()).find_resource_by_join_url(
                "alice-id", False, "https://teams.microsoft.com/l/x"
            )

        assert resource_id is None
        assert m.call_args.kwargs["params"]["$filter"] == (
            "startswith(joinWebUrl,'https://teams.microsoft.com/l/x')"
        )


# ── Transcripts ──────────────────────────────────────────────────────────────


class TestTranscriptProvider:
    @pytest.mark.asyncio
    async def test_list_transcripts_sets_meeting_id(self):
        body = {
            "value": [
                {"id": "tr-1", "createdDateTime": "2026-03-01T16:05:00Z"},
                {"id": "tr-2", "meetingId": "other"},
            ]
        }
        with _get_mock(_response(200, json=body)) as m:
            descriptors = await GraphTranscriptProvider(_client()).list_transcripts(
                "alice-id", "res-1"
            )

        assert [d.id for d in descriptors] == ["tr-1", "tr-2"]
        assert descriptors[0].meeting_id == "res-1"
        assert descriptors[1].meeting_id == "other"
        assert descriptors[0].created_at == datetime(2026, 3, 1, 16, 5, tzinfo=timezone.utc)
        assert m.call_args.args[0] == f"{BASE}/users/alice-id/onlineMeetings/res-1/transcripts"

    @pytest.mark.asyncio
    async def test_transcripts_not_supported_propagates(self):
        with _get_mock(_response(404, json={"error": {"code": "NotFound"}})):
            with pytest.raises(GraphNotFoundError):
                await GraphTranscriptProvider(_client()).list_transcripts("alice-id", "res-1")

    @pytest.mark.asyncio
    async def test_list_recordings_single_item(self):
        with _get_mock(_response(200, json={"value": [{"id": "rec-1"}]})) as m:
            recordings = await GraphTranscriptProvider(_client()).list_recordings(
                "alice-id", "res-1"
            )
        assert recordings == [{"id": "rec-1"}]
        assert m.call_args.kwargs["params"] == {"$top": 1}

    @pytest.mark.asyncio
    async def test_fetch_content_uses_fallback_path(self):
        descriptor = TranscriptDescriptor(id="tr-1")
        with _get_mock(_response(200, text="WEBVTT\n")) as m:
            content = await GraphTranscriptProvider(_client()).fetch_transcript_content(
                "alice-id", "res-1", descriptor
            )

        assert content == "WEBVTT\n"
        assert m.call_args.args[0] == (
            f"{BASE}/users/alice-id/onlineMeetings/res-1/transcripts/tr-1/content"
        )
        assert m.call_args.kwargs["params"] == {"$format": "text/vtt"}
        assert m.call_args.kwargs["headers"]["Accept"] == "text/vtt"


# ── Credentials ──────────────────────────────────────────────────────────────


def _provider(**kwargs) -> GraphCredentialProvider:
    defaults = {"tenant_id": "t1", "client_id": "c1", "client_secret": "s1"}
    defaults.update(kwargs)
    return GraphCredentialProvider(**defaults)


def _token_response(status_code: int = 200, **kwargs):
    return _response(
        status_code,
        url="https://login.microsoftonline.com/t1/oauth2/v2.0/token",
        method="POST",
        **kwargs,
    )


class TestCredentialProvider:
    @pytest.mark.asyncio
    async def test_application_token_is_cached(self):
        resp = _token_response(json={"access_token": "app-1", "expires_in": 3600})
        provider = _provider()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=resp) as m:
            first = await provider.get_application_token()
            second = await provider.get_application_token()

        assert first == second == "app-1"
        assert m.call_count == 1
        args, kwargs = m.call_args
        assert args[0] == "https://login.microsoftonline.com/t1/oauth2/v2.0/token"
        assert kwargs["data"]["grant_type"] == "client_credentials"
        assert kwargs["data"]["scope"] == "https://graph.microsoft.com/.default"

    @pytest.mark.asyncio
    async def test_short_lived_token_is_refreshed(self):
        responses = [
            _token_response(json={"access_token": "app-1", "expires_in": 30}),
            _token_response(json={"access_token": "app-2", "expires_in": 3600}),
        ]
        provider = _provider()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=responses):
            assert await provider.get_application_token() == "app-1"
            assert await provider.get_application_token() == "app-2"

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        with pytest.raises(CredentialError):
            await _provider(client_secret="").get_application_token()

    @pytest.mark.asyncio
    async def test_token_endpoint_refusal(self):
        resp = _token_response(400, json={"error": "invalid_client"})
        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=resp):
            with pytest.raises(CredentialError):
                await _provider().get_application_token()

    @pytest.mark.asyncio
    async def test_token_endpoint_unreachable(self):
        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            side_effect=httpx.ConnectError("refused"),
        ):
            with pytest.raises(CredentialError):
                await _provider().get_application_token()

    @pytest.mark.asyncio
    async def test_bound_providers_share_cache(self):
        resp = _token_response(json={"access_token": "app-1", "expires_in": 3600})
        root = _provider()

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=resp) as m:
            await root.with_delegated_token("user-a").get_application_token()
            await root.with_delegated_token("user-b").get_application_token()

        assert m.call_count == 1

    @pytest.mark.asyncio
    async def test_delegated_token(self):
        bound = _provider().with_delegated_token("user-a")
        assert await bound.require_delegated_token() == "user-a"

    @pytest.mark.asyncio
    async def test_async_delegated_source(self):
        async def source():
            return "user-async"

        provider = _provider(delegated_token_source=source)
        assert await provider.get_delegated_token() == "user-async"

    @pytest.mark.asyncio
    async def test_missing_delegated_token(self):
        assert await _provider().get_delegated_token() is None
        with pytest.raises(CredentialError):
            await _provider().with_delegated_token("").require_delegated_token()
