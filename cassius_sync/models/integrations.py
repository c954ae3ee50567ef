"""
Calendar integration model.

Stores the per-organisation Google Calendar connection: OAuth tokens,
calendar selection and sync counters. Tokens are refreshed proactively
by the token lifecycle manager and persisted as soon as they change.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cassius_sync.models.base import BaseModel, as_utc, utc_now

# Refresh if expiring within 5 minutes
DEFAULT_REFRESH_MARGIN = timedelta(minutes=5)


class CalendarIntegration(BaseModel):
    """
    One calendar provider connection per organisation (tenant).

    Attributes:
        organisation_id: Tenant that owns this integration
        provider: Calendar provider (currently only 'google')
        is_enabled: Whether push-sync is enabled for the organisation
        access_token: Current access token (never logged)
        refresh_token: Refresh token; retained until explicit disconnect
        token_expires_at: When the access token expires
        scope: OAuth scopes granted (space-separated)
        provider_user_email: Google account email that granted access
        target_calendar_id: Calendar that appointments are written to
        source_calendar_id: Calendar that events are imported from
        import_enabled: Whether scheduled imports are enabled
        last_sync_at: Completion time of the last push batch
        last_import_at: Completion time of the last committed import
        sync_token: Continuation token of the last incremental import
        sync_token_calendar_id: Calendar the continuation token was issued for
        sync_error_count: Failed items in the last push batch
        last_sync_error: Summary of the last push batch failures
    """

    __tablename__ = "calendar_integrations"

    organisation_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        doc="Organisation (tenant) ID"
    )

    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="google",
        doc="Calendar provider (google)"
    )

    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Whether outbound sync is enabled"
    )

    # Token storage
    access_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth access token"
    )

    refresh_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth refresh token (for obtaining new access tokens)"
    )

    token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the access token expires"
    )

    scope: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="OAuth scopes granted (space-separated)"
    )

    provider_user_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Google account email from OAuth"
    )

    # Calendar selection
    target_calendar_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Calendar Cassius writes appointments to"
    )

    target_calendar_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    source_calendar_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Calendar Cassius imports events from"
    )

    source_calendar_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    import_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Sync bookkeeping
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the last outbound batch completed"
    )

    last_import_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the last import commit completed"
    )

    sync_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Provider continuation token for incremental imports"
    )

    sync_token_calendar_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Calendar the continuation token belongs to"
    )

    sync_error_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Failed items in the last outbound batch"
    )

    last_sync_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        Index(
            "ix_calendar_integrations_org_provider",
            "organisation_id",
            "provider",
            unique=True,
        ),
    )

    @property
    def is_connected(self) -> bool:
        """Check whether the integration holds usable credentials."""
        return bool(self.refresh_token)

    def needs_refresh(
        self,
        now: Optional[datetime] = None,
        margin: timedelta = DEFAULT_REFRESH_MARGIN,
    ) -> bool:
        """
        Check if the access token should be refreshed before use.

        An unknown expiry or a missing access token always requires a refresh.
        """
        if not self.access_token or self.token_expires_at is None:
            return True
        now = as_utc(now) or utc_now()
        return now >= as_utc(self.token_expires_at) - margin

    def clear_credentials(self) -> None:
        """Forget all tokens and disable the integration (explicit disconnect)."""
        self.access_token = None
        self.refresh_token = None
        self.token_expires_at = None
        self.sync_token = None
        self.sync_token_calendar_id = None
        self.is_enabled = False

    def sync_token_for(self, calendar_id: str) -> Optional[str]:
        """Stored continuation token, only if it was issued for this calendar."""
        if self.sync_token and self.sync_token_calendar_id == calendar_id:
            return self.sync_token
        return None

    def store_sync_token(self, calendar_id: str, token: Optional[str]) -> None:
        self.sync_token = token
        self.sync_token_calendar_id = calendar_id if token else None

    def __repr__(self) -> str:
        return (
            f"<CalendarIntegration(organisation_id={self.organisation_id}, "
            f"provider={self.provider}, enabled={self.is_enabled})>"
        )
