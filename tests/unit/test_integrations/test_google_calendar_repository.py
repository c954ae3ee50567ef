"""Tests for the Google Calendar repository."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from cassius_sync.integrations.base import EventPayload
from cassius_sync.integrations.google_calendar.exceptions import GoogleCalendarNotFoundError
from cassius_sync.integrations.google_calendar.repository import GoogleCalendarRepository


@pytest.fixture
def credential_provider():
    provider = MagicMock()
    provider.get_access_token = AsyncMock(return_value="access-1")
    return provider


@pytest.fixture
def api_client():
    return MagicMock()


@pytest.fixture
def client_factory(api_client):
    return MagicMock(return_value=api_client)


@pytest_asyncio.fixture
async def repository(credential_provider, client_factory):
    repo = GoogleCalendarRepository(
        credential_provider,
        executor=ThreadPoolExecutor(max_workers=1),
        timeout=5.0,
        client_factory=client_factory,
    )
    yield repo
    await repo.close()


class TestListAllEvents:
    """Tests for pagination."""

    @pytest.mark.asyncio
    async def test_union_of_pages_and_final_sync_token(self, repository, api_client):
        api_client.list_events.side_effect = [
            {"items": [{"id": "e1"}, {"id": "e2"}], "nextPageToken": "p2"},
            {"items": [{"id": "e3"}], "nextPageToken": "p3"},
            {"items": [{"id": "e4", "status": "cancelled"}], "nextSyncToken": "sync-9"},
        ]

        page = await repository.list_all_events(
            "primary",
            time_min=datetime(2026, 10, 1, tzinfo=timezone.utc),
            time_max=datetime(2026, 12, 1, tzinfo=timezone.utc),
        )

        assert [event.id for event in page.events] == ["e1", "e2", "e3", "e4"]
        assert page.next_sync_token == "sync-9"
        assert page.next_page_token is None
        page_tokens = [call.kwargs["page_token"] for call in api_client.list_events.call_args_list]
        assert page_tokens == [None, "p2", "p3"]
        first_call = api_client.list_events.call_args_list[0].kwargs
        assert first_call["time_min"] == "2026-10-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_sync_token_is_forwarded(self, repository, api_client):
        api_client.list_events.return_value = {"items": [], "nextSyncToken": "sync-2"}

        page = await repository.list_all_events("primary", sync_token="sync-1")

        assert api_client.list_events.call_args.kwargs["sync_token"] == "sync-1"
        assert page.next_sync_token == "sync-2"


class TestGetEvent:

    @pytest.mark.asyncio
    async def test_deleted_event_is_none(self, repository, api_client):
        api_client.get_event.side_effect = GoogleCalendarNotFoundError("gone")

        assert await repository.get_event("primary", "evt-1") is None

    @pytest.mark.asyncio
    async def test_found(self, repository, api_client):
        api_client.get_event.return_value = {"id": "evt-1", "etag": '"7"', "status": "confirmed"}

        event = await repository.get_event("primary", "evt-1")

        assert event.id == "evt-1"
        assert event.etag == '"7"'


class TestWrites:

    @pytest.mark.asyncio
    async def test_create_sends_marked_body(self, repository, api_client):
        api_client.insert_event.return_value = {"id": "evt-1", "etag": '"1"'}
        payload = EventPayload(
            appointment_id="appt-1",
            title="Bilan",
            start_time=datetime(2026, 11, 2, 8, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 11, 2, 8, 30, tzinfo=timezone.utc),
        )

        event = await repository.create_event("primary", payload)

        body = api_client.insert_event.call_args.kwargs["body"]
        assert body["summary"] == "[Cassius] Bilan"
        assert event.id == "evt-1"


class TestCredentials:

    @pytest.mark.asyncio
    async def test_client_rebuilt_when_token_changes(
        self, repository, credential_provider, client_factory, api_client
    ):
        api_client.list_calendars.return_value = [{"id": "primary", "primary": True}]

        await repository.list_calendars()
        await repository.list_calendars()
        assert client_factory.call_count == 1

        credential_provider.get_access_token.return_value = "access-2"
        calendars = await repository.list_calendars()

        assert client_factory.call_count == 2
        credentials = client_factory.call_args.args[0]
        assert credentials.token == "access-2"
        assert calendars[0].primary is True
