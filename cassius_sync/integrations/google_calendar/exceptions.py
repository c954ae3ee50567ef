"""
Custom exceptions for Google Calendar operations.

Provides structured error handling with retryable flags and the
operator-facing reason recorded on failed sync items.
"""

from typing import Optional


class GoogleCalendarError(Exception):
    """Base exception for Google Calendar operations."""

    retryable: bool = False
    status_code: Optional[int] = None
    reason: Optional[str] = None

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        if status_code is not None:
            self.status_code = status_code

    @property
    def display_reason(self) -> str:
        """Reason shown to operators; falls back to the raw provider message."""
        return self.reason or self.message


class GoogleCalendarAuthError(GoogleCalendarError):
    """
    Authentication failure (401).

    Causes:
    - Access token expired or revoked
    - Grant revoked by the account owner
    """

    status_code = 401
    reason = "token expired or invalid"


class GoogleCalendarPermissionError(GoogleCalendarError):
    """
    Authorization failure (403).

    Causes:
    - Missing calendar scope
    - Calendar not shared with the connected account
    """

    status_code = 403
    reason = "insufficient calendar permissions"


class GoogleCalendarNotFoundError(GoogleCalendarError):
    """
    Event or calendar not found (404).

    Event lookups translate this into "deleted provider-side"; on writes it
    means the target calendar no longer exists.
    """

    status_code = 404
    reason = "calendar not found"


class GoogleCalendarRateLimitError(GoogleCalendarError):
    """
    Rate limit or quota hit (429, or 403 with a rate-limit reason).

    Transient: retried by the next scheduled batch, not inline.
    """

    status_code = 429
    reason = "provider rate limit"
    retryable = True


class GoogleCalendarTimeoutError(GoogleCalendarError):
    """The provider call exceeded the client timeout."""

    reason = "provider timeout"
    retryable = True


class SyncTokenInvalidError(GoogleCalendarError):
    """
    The provider rejected an incremental continuation token (410 Gone).

    Callers must fall back to a full window re-scan; retrying with the
    same token can never succeed.
    """

    status_code = 410
    reason = "sync token invalid"


class GoogleCalendarConnectionError(GoogleCalendarError):
    """The provider could not be reached (DNS, refused or reset connection)."""

    reason = "provider unreachable"
    retryable = True
