"""
Sync conflict model.

Entities:
- SyncConflict: Divergence between Cassius and the calendar provider that
  needs an operator decision
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cassius_sync.models.base import BaseModel, get_json_type, utc_now


class ConflictStatus(str, Enum):
    """Conflict lifecycle states. Terminal states are set by operators only."""

    OPEN = "open"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class ConflictSource(str, Enum):
    """Side whose observation triggered the conflict."""

    GOOGLE = "google"
    CASSIUS = "cassius"


class SyncConflict(BaseModel):
    """
    Tracks situations that automated reconciliation cannot decide.

    Typical case: an appointment was modified locally after its last push
    and the provider copy was modified too (etag changed).

    Lifecycle:
    1. open: Recorded by the outbound or inbound engine
    2. resolved: Operator handled the divergence
    3. ignored: Operator chose to leave it as is

    Conflicts are never expired or deleted automatically.
    """

    __tablename__ = "sync_conflicts"

    organisation_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Source: 'google', 'cassius'"
    )

    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="event",
    )

    internal_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        doc="Internal subject (appointment ID)"
    )

    external_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Provider subject (event ID)"
    )

    reason: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Human-readable description of the divergence"
    )

    payload: Mapped[Optional[dict]] = mapped_column(
        get_json_type(),
        nullable=True,
        doc="Snapshot of both sides when the conflict was detected"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ConflictStatus.OPEN.value,
        doc="Status: 'open', 'resolved', 'ignored'"
    )

    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    resolved_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        doc="Operator who closed the conflict"
    )

    __table_args__ = (
        Index("idx_sync_conflicts_org_status", "organisation_id", "status"),
        Index("idx_sync_conflicts_subject", "organisation_id", "internal_id", "external_id"),
    )

    @property
    def is_open(self) -> bool:
        return self.status == ConflictStatus.OPEN.value

    def __repr__(self) -> str:
        return f"<SyncConflict(source='{self.source}', status='{self.status}')>"
