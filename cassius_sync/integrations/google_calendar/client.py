"""
Google Calendar API client wrapper with error handling.

Provides a clean interface over the Google Calendar API v3. Calls are not
retried inline: transient failures are reported per item and picked up by
the next scheduled batch.
"""

import logging
from typing import Optional

import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError

from cassius_sync.integrations.google_calendar.exceptions import (
    GoogleCalendarError,
    GoogleCalendarAuthError,
    GoogleCalendarConnectionError,
    GoogleCalendarNotFoundError,
    GoogleCalendarPermissionError,
    GoogleCalendarRateLimitError,
    GoogleCalendarTimeoutError,
    SyncTokenInvalidError,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("ratelimitexceeded", "userratelimitexceeded", "quota", "rate limit")

# TimeoutError is an OSError; it must be caught before these
TRANSPORT_ERRORS = (OSError, httplib2.HttpLib2Error)


def _error_text(error: HttpError) -> str:
    """Extract a searchable description from an HttpError."""
    content = error.content or b""
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="ignore")
    return f"{error} {content}"


def _handle_http_error(error: HttpError, sync_token: Optional[str] = None) -> None:
    """Convert HttpError to appropriate GoogleCalendarError."""
    status = error.resp.status
    message = _error_text(error)

    if status == 401:
        raise GoogleCalendarAuthError(
            "Authentication failed - credentials may be invalid or expired",
            original_error=error,
        )
    elif status == 403:
        if any(marker in message.lower() for marker in RATE_LIMIT_MARKERS):
            raise GoogleCalendarRateLimitError(
                "API quota or rate limit exceeded",
                original_error=error,
                status_code=403,
            )
        raise GoogleCalendarPermissionError(
            "Access denied - check calendar sharing permissions",
            original_error=error,
        )
    elif status == 404:
        raise GoogleCalendarNotFoundError(
            "Event or calendar not found",
            original_error=error,
        )
    elif status == 410 and sync_token:
        raise SyncTokenInvalidError(
            "Sync token is no longer valid - a full re-scan is required",
            original_error=error,
        )
    elif status == 429:
        raise GoogleCalendarRateLimitError(
            "Rate limit exceeded - too many requests",
            original_error=error,
        )
    else:
        raise GoogleCalendarError(
            f"Google Calendar API error ({status}): {error}",
            original_error=error,
            status_code=status,
        )


def _handle_timeout(error: Exception) -> None:
    raise GoogleCalendarTimeoutError(
        f"Google Calendar API call timed out: {error}",
        original_error=error,
    )


def _handle_transport_error(error: Exception) -> None:
    raise GoogleCalendarConnectionError(
        f"Google Calendar API unreachable: {type(error).__name__}: {error}",
        original_error=error,
    )


class GoogleCalendarClient:
    """
    Wrapper around Google Calendar API v3.

    Provides:
    - Consistent error handling
    - A per-call timeout
    - Incremental (sync token) and windowed list requests
    """

    def __init__(self, credentials: Credentials, timeout: float = 30.0):
        """
        Initialize the client.

        Args:
            credentials: Google OAuth2 credentials
            timeout: Socket timeout for each API call, in seconds
        """
        # Token refresh belongs to the token lifecycle manager, so a 401 surfaces
        # as GoogleCalendarAuthError instead of triggering a refresh here
        http = AuthorizedHttp(
            credentials,
            http=httplib2.Http(timeout=timeout),
            refresh_status_codes=(),
        )
        self._service: Resource = build(
            "calendar",
            "v3",
            http=http,
            cache_discovery=False,
        )

    @property
    def service(self) -> Resource:
        """Get the underlying Google API service."""
        return self._service

    def list_events(
        self,
        calendar_id: str,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        page_token: Optional[str] = None,
        sync_token: Optional[str] = None,
        max_results: int = 250,
    ) -> dict:
        """
        List one page of events from a calendar.

        With a sync token only changes since that token are returned and the
        time window is ignored (the API rejects both together). Deleted events
        are always included so cancellations can be mirrored.

        Args:
            calendar_id: Calendar to query
            time_min: Lower bound (RFC 3339), full scans only
            time_max: Upper bound (RFC 3339), full scans only
            page_token: Token for pagination
            sync_token: Continuation token for incremental listing
            max_results: Maximum events per page

        Returns:
            API response with items, nextPageToken and, on the last page,
            nextSyncToken

        Raises:
            SyncTokenInvalidError: If the provider rejected the sync token
        """
        params = {
            "calendarId": calendar_id,
            "singleEvents": True,
            "showDeleted": True,
            "maxResults": max_results,
        }
        if sync_token:
            params["syncToken"] = sync_token
        else:
            params["timeMin"] = time_min
            params["timeMax"] = time_max
        if page_token:
            params["pageToken"] = page_token

        try:
            return self._service.events().list(**params).execute()
        except HttpError as e:
            _handle_http_error(e, sync_token=sync_token)
        except TimeoutError as e:
            _handle_timeout(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)

    def get_event(self, calendar_id: str, event_id: str) -> dict:
        """
        Get a single event by ID.

        Args:
            calendar_id: Calendar containing the event
            event_id: Event ID

        Returns:
            Event data
        """
        try:
            return self._service.events().get(
                calendarId=calendar_id,
                eventId=event_id,
            ).execute()
        except HttpError as e:
            _handle_http_error(e)
        except TimeoutError as e:
            _handle_timeout(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)

    def insert_event(self, calendar_id: str, body: dict) -> dict:
        """
        Create a new event.

        Args:
            calendar_id: Calendar to create event in
            body: Event data in Google Calendar format

        Returns:
            Created event with ID and etag
        """
        try:
            result = self._service.events().insert(
                calendarId=calendar_id,
                body=body,
            ).execute()
            logger.info(f"Created event {result.get('id')} in {calendar_id}")
            return result
        except HttpError as e:
            _handle_http_error(e)
        except TimeoutError as e:
            _handle_timeout(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)

    def update_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        """
        Replace an existing event.

        Args:
            calendar_id: Calendar containing the event
            event_id: Event to update
            body: Full event data

        Returns:
            Updated event with its new etag
        """
        try:
            result = self._service.events().update(
                calendarId=calendar_id,
                eventId=event_id,
                body=body,
            ).execute()
            logger.info(f"Updated event {event_id} in {calendar_id}")
            return result
        except HttpError as e:
            _handle_http_error(e)
        except TimeoutError as e:
            _handle_timeout(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)

    def list_calendars(self) -> list[dict]:
        """
        List all calendars visible to the connected account.

        Returns:
            calendarList entries across all pages
        """
        calendars = []
        page_token = None

        try:
            while True:
                response = self._service.calendarList().list(
                    pageToken=page_token,
                ).execute()
                calendars.extend(response.get("items", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as e:
            _handle_http_error(e)
        except TimeoutError as e:
            _handle_timeout(e)
        except TRANSPORT_ERRORS as e:
            _handle_transport_error(e)

        return calendars
