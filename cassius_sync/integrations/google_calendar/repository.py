"""
Google Calendar Repository implementation.

Implements CalendarRepository protocol using Google Calendar API.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from functools import partial
from typing import Callable, Optional, Sequence

from google.oauth2.credentials import Credentials

from cassius_sync.config import get_settings
from cassius_sync.integrations.base import (
    CalendarEvent,
    CalendarInfo,
    CalendarRepository,
    CredentialProvider,
    EventPage,
    EventPayload,
)
from cassius_sync.integrations.google_calendar.adapter import (
    GoogleCalendarAdapter,
    format_rfc3339,
)
from cassius_sync.integrations.google_calendar.client import GoogleCalendarClient
from cassius_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarNotFoundError,
)

logger = logging.getLogger(__name__)


class GoogleCalendarRepository(CalendarRepository):
    """
    CalendarRepository implementation using Google Calendar API.

    Credentials come from a CredentialProvider before every call, so a token
    refreshed mid-batch is picked up immediately. The Google API client is
    synchronous, so operations run in a thread pool for async compatibility.
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        executor: Optional[ThreadPoolExecutor] = None,
        timeout: float = 30.0,
        client_factory: Optional[Callable[..., GoogleCalendarClient]] = None,
    ):
        """
        Initialize the repository.

        Args:
            credential_provider: Source of valid access tokens
            executor: Thread pool for running sync API calls (creates default if None)
            timeout: Per-call timeout in seconds
            client_factory: Builds a client from credentials (defaults to GoogleCalendarClient)
        """
        self._credentials = credential_provider
        self._executor = executor or ThreadPoolExecutor(max_workers=4)
        self._timeout = timeout
        self._client_factory = client_factory or GoogleCalendarClient
        self._client: Optional[GoogleCalendarClient] = None
        self._client_token: Optional[str] = None
        self._adapter = GoogleCalendarAdapter()

    async def _get_client(self) -> GoogleCalendarClient:
        """Get the API client, rebuilding it when the access token changed."""
        access_token = await self._credentials.get_access_token()
        if self._client is None or access_token != self._client_token:
            self._client = self._client_factory(
                Credentials(token=access_token),
                timeout=self._timeout,
            )
            self._client_token = access_token
        return self._client

    async def _run_in_executor(self, func, *args, **kwargs):
        """Run a synchronous function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(func, *args, **kwargs),
        )

    async def get_event(
        self,
        calendar_id: str,
        event_id: str,
    ) -> Optional[CalendarEvent]:
        """
        Get a single event by ID from Google Calendar.

        Returns:
            Event, or None if it was deleted provider-side
        """
        client = await self._get_client()
        try:
            google_event = await self._run_in_executor(
                client.get_event,
                calendar_id=calendar_id,
                event_id=event_id,
            )
        except GoogleCalendarNotFoundError:
            return None
        return self._adapter.from_google_event(google_event, calendar_id)

    async def create_event(
        self,
        calendar_id: str,
        payload: EventPayload,
    ) -> CalendarEvent:
        """Create a new event in Google Calendar."""
        client = await self._get_client()
        google_event = await self._run_in_executor(
            client.insert_event,
            calendar_id=calendar_id,
            body=self._adapter.to_google_event(payload),
        )

        created_event = self._adapter.from_google_event(google_event, calendar_id)
        logger.info(
            f"Created event {created_event.id} for appointment {payload.appointment_id}"
        )
        return created_event

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        payload: EventPayload,
    ) -> CalendarEvent:
        """
        Replace an existing event in Google Calendar.

        The whole body is sent so the provider copy always matches the
        appointment exactly.
        """
        client = await self._get_client()
        google_event = await self._run_in_executor(
            client.update_event,
            calendar_id=calendar_id,
            event_id=event_id,
            body=self._adapter.to_google_event(payload),
        )

        updated_event = self._adapter.from_google_event(google_event, calendar_id)
        logger.info(f"Updated event {event_id} for appointment {payload.appointment_id}")
        return updated_event

    async def list_events_page(
        self,
        calendar_id: str,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        page_token: Optional[str] = None,
        sync_token: Optional[str] = None,
    ) -> EventPage:
        """Fetch one page of events."""
        client = await self._get_client()
        response = await self._run_in_executor(
            client.list_events,
            calendar_id=calendar_id,
            time_min=format_rfc3339(time_min) if time_min else None,
            time_max=format_rfc3339(time_max) if time_max else None,
            page_token=page_token,
            sync_token=sync_token,
        )

        return EventPage(
            events=[
                self._adapter.from_google_event(item, calendar_id)
                for item in response.get("items", [])
            ],
            next_page_token=response.get("nextPageToken"),
            next_sync_token=response.get("nextSyncToken"),
        )

    async def list_all_events(
        self,
        calendar_id: str,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        sync_token: Optional[str] = None,
    ) -> EventPage:
        """
        Follow pagination until the provider stops returning a page token.

        Returns:
            EventPage with the union of all pages and the sync token from the
            final page
        """
        events: list[CalendarEvent] = []
        page_token = None
        pages = 0

        while True:
            page = await self.list_events_page(
                calendar_id,
                time_min=time_min,
                time_max=time_max,
                page_token=page_token,
                sync_token=sync_token,
            )
            pages += 1
            events.extend(page.events)
            page_token = page.next_page_token
            if not page_token:
                break

        logger.debug(
            f"Retrieved {len(events)} events from {calendar_id} in {pages} page(s)"
        )
        return EventPage(events=events, next_sync_token=page.next_sync_token)

    async def list_calendars(self) -> Sequence[CalendarInfo]:
        """List calendars visible to the connected account."""
        client = await self._get_client()
        entries = await self._run_in_executor(client.list_calendars)
        return [self._adapter.from_google_calendar(entry) for entry in entries]

    async def close(self):
        """Clean up resources."""
        if self._executor:
            self._executor.shutdown(wait=False)
            self._executor = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
        return False


_shared_executor: Optional[ThreadPoolExecutor] = None


def create_google_repository(credential_provider: CredentialProvider) -> GoogleCalendarRepository:
    """Build a repository on the shared thread pool with the configured timeout."""
    global _shared_executor
    if _shared_executor is None:
        _shared_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="gcal")
    settings = get_settings()
    return GoogleCalendarRepository(
        credential_provider,
        executor=_shared_executor,
        timeout=settings.google_api_timeout_seconds,
    )
