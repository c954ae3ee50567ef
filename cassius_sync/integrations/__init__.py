"""
External service integrations for Cassius Calendar Sync.

Provides the abstraction layer over calendar providers.
"""

from cassius_sync.integrations.base import (
    CalendarEvent,
    CalendarInfo,
    CalendarRepository,
    CredentialProvider,
    EventPage,
    EventPayload,
)

__all__ = [
    "CalendarEvent",
    "CalendarInfo",
    "CalendarRepository",
    "CredentialProvider",
    "EventPage",
    "EventPayload",
]
