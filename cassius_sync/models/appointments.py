"""
Appointment model.

Only the subset of the clinical appointment record that calendar sync reads
and writes is mapped here: scheduling fields plus the sync envelope that links
an appointment to its provider-side event.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cassius_sync.models.base import BaseModel, as_utc


class SyncStatus(str, Enum):
    """Outbound sync state of an appointment."""

    UNSYNCED = "UNSYNCED"
    SYNCED = "SYNCED"
    ERROR = "ERROR"


class Appointment(BaseModel):
    """
    Internal scheduling record reconciled by the outbound sync engine.

    The internal record is the source of truth for content and existence;
    the provider event is a projection tracked through the sync envelope
    (external ids, etag, status, last error).
    """

    __tablename__ = "appointments"

    organisation_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="Organisation (tenant) ID"
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Human-facing appointment title"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    date_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Appointment start (required for sync)"
    )

    date_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Appointment end (defaults to start + default duration)"
    )

    # Content modification time, maintained by the scheduling application.
    # Sync envelope writes must not bump it.
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Timestamp of last content change (UTC)"
    )

    # Sync envelope
    external_provider: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )

    external_calendar_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    external_event_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Provider event ID (absent until first successful push)"
    )

    external_etag: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Provider etag observed at last successful push"
    )

    sync_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SyncStatus.UNSYNCED.value,
        doc="Sync status: 'UNSYNCED', 'SYNCED', 'ERROR'"
    )

    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    sync_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        Index("idx_appointment_org_sync_status", "organisation_id", "sync_status"),
        Index("idx_appointment_org_start", "organisation_id", "date_start"),
    )

    @property
    def modified_at(self) -> Optional[datetime]:
        """Last local modification time (creation time if never updated)."""
        return as_utc(self.updated_at or self.created_at)

    def modified_since(self, instant: Optional[datetime]) -> bool:
        """Check whether the record was modified locally after ``instant``."""
        if instant is None:
            return True
        modified = self.modified_at
        return modified is not None and modified > as_utc(instant)

    def mark_synced(
        self,
        calendar_id: str,
        event_id: str,
        etag: Optional[str],
        synced_at: datetime,
        provider: str = "google",
    ) -> None:
        """Record a successful push."""
        self.external_provider = provider
        self.external_calendar_id = calendar_id
        self.external_event_id = event_id
        self.external_etag = etag
        self.sync_status = SyncStatus.SYNCED.value
        self.last_synced_at = synced_at
        self.sync_error = None

    def mark_error(self, reason: str) -> None:
        """Record a failed push; the sync envelope is otherwise unchanged."""
        self.sync_status = SyncStatus.ERROR.value
        self.sync_error = reason

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, sync_status='{self.sync_status}')>"
