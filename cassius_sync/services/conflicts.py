"""
Conflict register.

Durable record of divergences that automated reconciliation cannot decide.
Conflicts are opened by the sync engines and closed only by an operator;
they are never expired or deleted.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cassius_sync.models.base import as_utc, utc_now
from cassius_sync.models.conflicts import ConflictSource, ConflictStatus, SyncConflict

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (ConflictStatus.RESOLVED.value, ConflictStatus.IGNORED.value)


class ConflictNotFoundError(Exception):
    """No conflict with this ID exists for the organisation."""


class ConflictStateError(Exception):
    """The requested transition is not allowed from the conflict's state."""


class ConflictRegister:
    """Opens, lists and closes sync conflicts for an organisation."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_open(
        self,
        organisation_id: str,
        internal_id: Optional[str],
        external_id: Optional[str],
        entity_type: str = "event",
    ) -> Optional[SyncConflict]:
        stmt = select(SyncConflict).where(
            SyncConflict.organisation_id == organisation_id,
            SyncConflict.entity_type == entity_type,
            SyncConflict.internal_id == internal_id,
            SyncConflict.external_id == external_id,
            SyncConflict.status == ConflictStatus.OPEN.value,
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def open(
        self,
        organisation_id: str,
        internal_id: Optional[str],
        external_id: Optional[str],
        reason: str,
        source: ConflictSource = ConflictSource.GOOGLE,
        payload: Optional[dict] = None,
        detected_at: Optional[datetime] = None,
        entity_type: str = "event",
    ) -> SyncConflict:
        """
        Open a conflict for a subject.

        At most one conflict per subject is open at a time: if one already
        is, it is returned unchanged.

        Args:
            organisation_id: Tenant ID
            internal_id: Appointment ID
            external_id: Provider event ID
            reason: Human-readable description of the divergence
            source: Side whose observation triggered the conflict
            payload: Snapshot of both sides
            detected_at: Detection time (defaults to now)
            entity_type: Kind of subject

        Returns:
            The open conflict for this subject
        """
        existing = await self.find_open(organisation_id, internal_id, external_id, entity_type)
        if existing is not None:
            return existing

        conflict = SyncConflict(
            organisation_id=organisation_id,
            source=ConflictSource(source).value,
            entity_type=entity_type,
            internal_id=internal_id,
            external_id=external_id,
            reason=reason,
            payload=payload,
            status=ConflictStatus.OPEN.value,
            detected_at=detected_at or utc_now(),
        )
        self._session.add(conflict)
        await self._session.flush()

        logger.info(
            f"Opened sync conflict {conflict.id} for organisation {organisation_id} "
            f"(appointment={internal_id}, event={external_id})"
        )
        return conflict

    async def closed_since(
        self,
        organisation_id: str,
        internal_id: Optional[str],
        external_id: Optional[str],
        since: Optional[datetime],
        entity_type: str = "event",
    ) -> bool:
        """Check whether an operator closed a conflict for this subject after ``since``."""
        stmt = select(SyncConflict).where(
            SyncConflict.organisation_id == organisation_id,
            SyncConflict.entity_type == entity_type,
            SyncConflict.internal_id == internal_id,
            SyncConflict.external_id == external_id,
            SyncConflict.status.in_(CLOSED_STATUSES),
        )
        result = await self._session.execute(stmt)
        since = as_utc(since)
        for conflict in result.scalars():
            resolved_at = as_utc(conflict.resolved_at)
            if resolved_at is not None and (since is None or resolved_at >= since):
                return True
        return False

    async def list_conflicts(
        self,
        organisation_id: str,
        status: Optional[ConflictStatus] = None,
    ) -> Sequence[SyncConflict]:
        """List an organisation's conflicts, newest first."""
        stmt = select(SyncConflict).where(SyncConflict.organisation_id == organisation_id)
        if status is not None:
            stmt = stmt.where(SyncConflict.status == ConflictStatus(status).value)
        stmt = stmt.order_by(SyncConflict.detected_at.desc())
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def get(self, organisation_id: str, conflict_id: uuid.UUID) -> SyncConflict:
        """
        Get one conflict.

        Raises:
            ConflictNotFoundError: If the ID is unknown for this organisation
        """
        stmt = select(SyncConflict).where(
            SyncConflict.organisation_id == organisation_id,
            SyncConflict.id == conflict_id,
        )
        result = await self._session.execute(stmt)
        conflict = result.scalar_one_or_none()
        if conflict is None:
            raise ConflictNotFoundError(f"Conflict {conflict_id} not found")
        return conflict

    async def resolve(
        self,
        organisation_id: str,
        conflict_id: uuid.UUID,
        outcome: ConflictStatus,
        actor: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SyncConflict:
        """
        Close an open conflict as resolved or ignored.

        Raises:
            ConflictNotFoundError: If the ID is unknown for this organisation
            ConflictStateError: If the outcome is 'open' or the conflict is
                already closed
        """
        outcome = ConflictStatus(outcome)
        if outcome == ConflictStatus.OPEN:
            raise ConflictStateError("A conflict can only be closed as 'resolved' or 'ignored'")

        conflict = await self.get(organisation_id, conflict_id)
        if not conflict.is_open:
            raise ConflictStateError(f"Conflict {conflict_id} is already {conflict.status}")

        conflict.status = outcome.value
        conflict.resolved_at = now or utc_now()
        conflict.resolved_by = actor
        await self._session.flush()

        logger.info(f"Conflict {conflict_id} marked {outcome.value} by {actor or 'unknown'}")
        return conflict
