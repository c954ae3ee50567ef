"""
Calendar repository protocol and base types.

Defines the interface the sync engines use to reach a calendar provider,
plus the provider-neutral event types that adapters map into.
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, Sequence


@dataclass
class CalendarEvent:
    """
    Normalized event representation across calendar providers.

    Cancelled events returned by incremental listings usually carry only an
    id and a status, so times and title are optional.
    """

    id: str
    calendar_id: str
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    description: Optional[str] = None
    all_day: bool = False
    location: Optional[str] = None
    attendees: list[str] = field(default_factory=list)
    status: str = "confirmed"
    etag: Optional[str] = None
    html_link: Optional[str] = None
    updated_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"


@dataclass
class EventPayload:
    """
    Content written to the provider for one appointment.

    Used as input to CalendarRepository.create_event() and update_event().
    """

    appointment_id: str
    title: str
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    timezone: str = "UTC"


@dataclass
class EventPage:
    """One page of a provider listing."""

    events: list[CalendarEvent] = field(default_factory=list)
    next_page_token: Optional[str] = None
    next_sync_token: Optional[str] = None


@dataclass
class CalendarInfo:
    """A calendar visible to the connected account."""

    id: str
    name: str
    primary: bool = False
    access_role: Optional[str] = None
    timezone: Optional[str] = None


class CalendarRepository(Protocol):
    """
    Protocol for calendar provider backends.

    Implementations:
    - GoogleCalendarRepository: Uses Google Calendar API

    All methods are async for compatibility with external API calls.
    """

    @abstractmethod
    async def get_event(
        self,
        calendar_id: str,
        event_id: str,
    ) -> Optional[CalendarEvent]:
        """
        Get a single event by ID.

        Returns:
            Event or None if it no longer exists provider-side
        """
        ...

    @abstractmethod
    async def create_event(
        self,
        calendar_id: str,
        payload: EventPayload,
    ) -> CalendarEvent:
        """
        Create a new event.

        Returns:
            Created event with assigned ID and etag
        """
        ...

    @abstractmethod
    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        payload: EventPayload,
    ) -> CalendarEvent:
        """
        Replace an existing event's content.

        Returns:
            Updated event with its new etag
        """
        ...

    @abstractmethod
    async def list_events_page(
        self,
        calendar_id: str,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        page_token: Optional[str] = None,
        sync_token: Optional[str] = None,
    ) -> EventPage:
        """
        Fetch one page of events, either in a window or since a sync token.
        """
        ...

    @abstractmethod
    async def list_all_events(
        self,
        calendar_id: str,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        sync_token: Optional[str] = None,
    ) -> EventPage:
        """
        Follow pagination to the end.

        Returns:
            EventPage holding the union of all pages and the final sync token
        """
        ...

    @abstractmethod
    async def list_calendars(self) -> Sequence[CalendarInfo]:
        """List calendars visible to the connected account."""
        ...


class CredentialProvider(Protocol):
    """
    Supplies a currently-valid access token to provider clients.

    Implementations refresh and persist tokens as needed before returning.
    """

    @abstractmethod
    async def get_access_token(self) -> str:
        ...
