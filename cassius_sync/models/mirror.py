"""
Mirrored provider event model.

Entities:
- MirroredEvent: Read-only local copy of an event imported from Google Calendar
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cassius_sync.models.base import BaseModel, get_json_type


class MirroredEvent(BaseModel):
    """
    Local cache row for one provider event fetched during import.

    Rows are keyed by (integration, calendar, provider event id) and are never
    deleted by the import engine: a cancelled provider event only flips
    ``status`` so downstream consumers can detect the removal.
    """

    __tablename__ = "google_calendar_events"

    organisation_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    integration_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("calendar_integrations.id", ondelete="CASCADE"),
        nullable=False,
    )

    calendar_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Provider calendar the event was read from"
    )

    provider_event_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Provider event ID, unique per calendar"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="confirmed",
        doc="Status: 'confirmed', 'tentative', 'cancelled'"
    )

    etag: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    start_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    end_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    all_day: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="True for date-only events"
    )

    attendees: Mapped[list] = mapped_column(
        get_json_type(),
        nullable=False,
        default=list,
        doc="Attendee emails"
    )

    html_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    provider_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Last modification time reported by the provider"
    )

    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index(
            "ux_google_calendar_events_identity",
            "integration_id",
            "calendar_id",
            "provider_event_id",
            unique=True,
        ),
        Index("idx_google_calendar_events_org_time", "organisation_id", "start_at", "end_at"),
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def __repr__(self) -> str:
        return f"<MirroredEvent(provider_event_id={self.provider_event_id}, status='{self.status}')>"
