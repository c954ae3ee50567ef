"""
Google Calendar integration for Cassius Calendar Sync.

Provides the Google Calendar API as the external calendar provider.
"""

from cassius_sync.integrations.google_calendar.adapter import (
    APPOINTMENT_ID_PROPERTY,
    SELF_ORIGIN_PREFIX,
    GoogleCalendarAdapter,
    is_self_origin,
)
from cassius_sync.integrations.google_calendar.client import GoogleCalendarClient
from cassius_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarAuthError,
    GoogleCalendarConnectionError,
    GoogleCalendarError,
    GoogleCalendarNotFoundError,
    GoogleCalendarPermissionError,
    GoogleCalendarRateLimitError,
    GoogleCalendarTimeoutError,
    SyncTokenInvalidError,
)
from cassius_sync.integrations.google_calendar.repository import GoogleCalendarRepository

__all__ = [
    "APPOINTMENT_ID_PROPERTY",
    "SELF_ORIGIN_PREFIX",
    "GoogleCalendarAdapter",
    "GoogleCalendarClient",
    "GoogleCalendarError",
    "GoogleCalendarAuthError",
    "GoogleCalendarConnectionError",
    "GoogleCalendarNotFoundError",
    "GoogleCalendarPermissionError",
    "GoogleCalendarRateLimitError",
    "GoogleCalendarTimeoutError",
    "GoogleCalendarRepository",
    "SyncTokenInvalidError",
    "is_self_origin",
]
