"""
Pytest configuration and fixtures for Cassius Calendar Sync tests.

Provides an async in-memory database, integration/appointment factories
and an in-memory calendar provider.
"""

import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cassius_sync.auth.token_manager import TokenLifecycleManager
from cassius_sync.database import configure_sqlite_engine
from cassius_sync.integrations.base import (
    CalendarEvent,
    CalendarInfo,
    EventPage,
    EventPayload,
)
from cassius_sync.integrations.google_calendar.adapter import (
    APPOINTMENT_ID_PROPERTY,
    SELF_ORIGIN_PREFIX,
)
from cassius_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarNotFoundError,
    SyncTokenInvalidError,
)
from cassius_sync.models.appointments import Appointment
from cassius_sync.models.base import Base, utc_now
from cassius_sync.models.integrations import CalendarIntegration

ORGANISATION_ID = "org-cabinet-dupont"


class FakeCalendarRepository:
    """
    In-memory CalendarRepository.

    Events live in a dict keyed by (calendar_id, event_id). Every write bumps
    the etag, like the real provider. ``failures`` maps an appointment ID to
    the exception raised when that appointment is pushed.
    """

    def __init__(self):
        self.events: dict[tuple[str, str], CalendarEvent] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple] = []
        self.listing: list[CalendarEvent] = []
        self.next_sync_token: Optional[str] = "sync-token-1"
        self.invalid_sync_tokens: set[str] = set()
        self.calendars: list[CalendarInfo] = [
            CalendarInfo(id="primary", name="Cabinet", primary=True, access_role="owner"),
        ]
        self.credential_provider = None
        self._ids = itertools.count(1)
        self._etags = itertools.count(1)

    # Test helpers

    @property
    def writes(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in ("create", "update")]

    def _next_etag(self) -> str:
        return f'"etag-{next(self._etags)}"'

    def edit_remotely(self, calendar_id: str, event_id: str, **changes) -> CalendarEvent:
        event = self.events[(calendar_id, event_id)]
        updated = replace(event, etag=self._next_etag(), updated_at=utc_now(), **changes)
        self.events[(calendar_id, event_id)] = updated
        return updated

    def cancel_remotely(self, calendar_id: str, event_id: str) -> CalendarEvent:
        return self.edit_remotely(calendar_id, event_id, status="cancelled")

    def purge_remotely(self, calendar_id: str, event_id: str) -> None:
        del self.events[(calendar_id, event_id)]

    def _check_failure(self, payload: EventPayload) -> None:
        failure = self.failures.get(payload.appointment_id)
        if failure is not None:
            raise failure

    # CalendarRepository

    async def get_event(self, calendar_id: str, event_id: str) -> Optional[CalendarEvent]:
        self.calls.append(("get", calendar_id, event_id))
        return self.events.get((calendar_id, event_id))

    async def create_event(self, calendar_id: str, payload: EventPayload) -> CalendarEvent:
        self._check_failure(payload)
        event = CalendarEvent(
            id=f"evt-{next(self._ids)}",
            calendar_id=calendar_id,
            title=f"{SELF_ORIGIN_PREFIX} {payload.title}",
            start_time=payload.start_time,
            end_time=payload.end_time,
            description=payload.description,
            etag=self._next_etag(),
            updated_at=utc_now(),
            metadata={APPOINTMENT_ID_PROPERTY: payload.appointment_id},
        )
        self.events[(calendar_id, event.id)] = event
        self.calls.append(("create", calendar_id, event.id))
        return event

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        payload: EventPayload,
    ) -> CalendarEvent:
        self._check_failure(payload)
        if (calendar_id, event_id) not in self.events:
            raise GoogleCalendarNotFoundError("Event or calendar not found")
        event = replace(
            self.events[(calendar_id, event_id)],
            title=f"{SELF_ORIGIN_PREFIX} {payload.title}",
            start_time=payload.start_time,
            end_time=payload.end_time,
            description=payload.description,
            status="confirmed",
            etag=self._next_etag(),
            updated_at=utc_now(),
        )
        self.events[(calendar_id, event_id)] = event
        self.calls.append(("update", calendar_id, event_id))
        return event

    async def list_events_page(
        self,
        calendar_id: str,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        page_token: Optional[str] = None,
        sync_token: Optional[str] = None,
    ) -> EventPage:
        return await self.list_all_events(calendar_id, time_min, time_max, sync_token)

    async def list_all_events(
        self,
        calendar_id: str,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        sync_token: Optional[str] = None,
    ) -> EventPage:
        self.calls.append(("list", calendar_id, sync_token))
        if sync_token in self.invalid_sync_tokens:
            raise SyncTokenInvalidError("Sync token is no longer valid")
        return EventPage(events=list(self.listing), next_sync_token=self.next_sync_token)

    async def list_calendars(self) -> list[CalendarInfo]:
        self.calls.append(("calendars",))
        return list(self.calendars)


def provider_event(event_id: str, etag: str = '"v1"', **kwargs) -> CalendarEvent:
    """Build a provider event created outside Cassius."""
    defaults = dict(
        calendar_id="primary",
        title="Dentist conference",
        start_time=datetime(2026, 11, 3, 9, 0, tzinfo=timezone.utc),
        end_time=datetime(2026, 11, 3, 10, 0, tzinfo=timezone.utc),
        status="confirmed",
        etag=etag,
        updated_at=datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return CalendarEvent(id=event_id, **defaults)


@pytest.fixture
def organisation_id() -> str:
    return ORGANISATION_ID


@pytest.fixture
def make_provider_event():
    return provider_event


@pytest_asyncio.fixture
async def async_engine():
    """In-memory SQLite engine shared by every session of a test."""
    engine = configure_sqlite_engine(create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    ))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a clean database session for each test.

    Yields:
        AsyncSession bound to a fresh in-memory database
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def integration(db_session: AsyncSession) -> CalendarIntegration:
    """
    A connected, enabled integration with a token valid for one hour.

    Returns:
        CalendarIntegration targeting the primary calendar
    """
    integration = CalendarIntegration(
        organisation_id=ORGANISATION_ID,
        provider="google",
        is_enabled=True,
        access_token="access-token-1",
        refresh_token="refresh-token-1",
        token_expires_at=utc_now() + timedelta(hours=1),
        scope="https://www.googleapis.com/auth/calendar.events",
        provider_user_email="cabinet@example.com",
        target_calendar_id="primary",
        target_calendar_name="Cabinet",
        import_enabled=False,
        sync_error_count=0,
    )
    db_session.add(integration)
    await db_session.commit()
    return integration


@pytest.fixture
def make_appointment(db_session: AsyncSession):
    """
    Factory for persisted appointments.

    Appointments are last modified one hour ago unless ``updated_at`` is given.
    """
    counter = itertools.count(1)

    async def _make(title: Optional[str] = None, **kwargs) -> Appointment:
        number = next(counter)
        kwargs.setdefault("organisation_id", ORGANISATION_ID)
        kwargs.setdefault(
            "date_start",
            datetime(2026, 11, 2, 8, 0, tzinfo=timezone.utc) + timedelta(hours=number),
        )
        kwargs.setdefault("updated_at", utc_now() - timedelta(hours=1))
        appointment = Appointment(title=title or f"Consultation {number}", **kwargs)
        db_session.add(appointment)
        await db_session.commit()
        return appointment

    return _make


@pytest.fixture
def fake_repository() -> FakeCalendarRepository:
    return FakeCalendarRepository()


@pytest.fixture
def repository_factory(fake_repository: FakeCalendarRepository):
    """RepositoryFactory returning the in-memory provider."""

    def _factory(credential_provider):
        fake_repository.credential_provider = credential_provider
        return fake_repository

    return _factory


@pytest.fixture
def oauth_flow() -> AsyncMock:
    """Token endpoint stand-in; refresh_token is an AsyncMock."""
    return AsyncMock()


@pytest.fixture
def token_manager(oauth_flow: AsyncMock) -> TokenLifecycleManager:
    return TokenLifecycleManager(oauth_flow=oauth_flow)
