"""
Outbound sync engine (push).

Projects an organisation's appointments onto its external calendar. The
appointment is the source of truth for content and existence; the provider
copy is authoritative only for its own ID and etag.

Per batch:
1. Resolve the integration (configuration and credential failures abort
   before any provider call)
2. Select candidates: modified since the last batch, or not yet SYNCED
3. Push each candidate independently; provider errors fail the item only
4. Record the batch outcome once on the integration
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cassius_sync.auth.exceptions import CredentialError
from cassius_sync.auth.token_manager import TokenLifecycleManager
from cassius_sync.config import Settings, get_settings
from cassius_sync.integrations.base import CalendarEvent, CalendarRepository
from cassius_sync.integrations.google_calendar.adapter import GoogleCalendarAdapter
from cassius_sync.integrations.google_calendar.exceptions import GoogleCalendarError
from cassius_sync.models.appointments import Appointment, SyncStatus
from cassius_sync.models.base import utc_now
from cassius_sync.models.conflicts import ConflictSource
from cassius_sync.models.integrations import CalendarIntegration
from cassius_sync.services.conflicts import ConflictRegister
from cassius_sync.services.errors import NO_TARGET_CALENDAR, SyncConfigurationError
from cassius_sync.services.integration_access import (
    RepositoryFactory,
    open_repository,
    resolve_integration,
)
from cassius_sync.services.results import OutboundSyncResult

logger = logging.getLogger(__name__)

MISSING_START_DATE = "missing start date"
CONFLICT_PENDING = "conflict pending manual review"


class OutboundSyncEngine:
    """
    Pushes appointments to the organisation's target calendar.

    Args:
        session: Database session used for the whole batch
        repository_factory: Builds the provider repository from a credential
            provider (defaults to Google Calendar)
        token_manager: Token lifecycle manager
        settings: Application settings
        clock: Source of the current time
    """

    def __init__(
        self,
        session: AsyncSession,
        repository_factory: Optional[RepositoryFactory] = None,
        token_manager: Optional[TokenLifecycleManager] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session = session
        self._repository_factory = repository_factory
        self._token_manager = token_manager
        self._settings = settings or get_settings()
        self._clock = clock
        self._adapter = GoogleCalendarAdapter()
        self._conflicts = ConflictRegister(session)

    async def sync(self, organisation_id: str) -> OutboundSyncResult:
        """
        Run one push batch for an organisation.

        Raises:
            SyncConfigurationError: The integration is missing, disabled or
                has no target calendar
            CredentialError: Tokens are missing or cannot be refreshed; when
                raised mid-batch, items already pushed stay persisted
        """
        integration = await resolve_integration(self._session, organisation_id)
        if not integration.target_calendar_id:
            raise SyncConfigurationError(NO_TARGET_CALENDAR)

        _, repository = await open_repository(
            self._session,
            integration,
            token_manager=self._token_manager,
            repository_factory=self._repository_factory,
        )

        candidates = await self._load_candidates(integration)
        result = OutboundSyncResult(total=len(candidates))

        if not candidates:
            logger.info(f"Nothing to sync for organisation {organisation_id}")
            result.nothing_to_sync = True
            await self._finish(integration, result)
            return result

        logger.info(
            f"Pushing {len(candidates)} appointment(s) for organisation {organisation_id}"
        )

        try:
            for appointment in candidates:
                await self._sync_appointment(repository, integration, appointment, result)
                await self._session.commit()
        except CredentialError as e:
            logger.error(
                f"Sync aborted for organisation {organisation_id}: {e.reason}"
            )
            integration.sync_error_count = result.failed
            integration.last_sync_error = f"{e.reason}: {e.message}"
            await self._session.commit()
            raise

        await self._finish(integration, result)
        logger.info(
            f"Sync finished for organisation {organisation_id}: "
            f"created={result.created} updated={result.updated} "
            f"skipped={result.skipped} failed={result.failed}"
        )
        return result

    async def _load_candidates(self, integration: CalendarIntegration) -> Sequence[Appointment]:
        """Appointments changed since the last batch plus every non-SYNCED one."""
        stmt = select(Appointment).where(
            Appointment.organisation_id == integration.organisation_id,
            Appointment.deleted_at.is_(None),
        )
        if integration.last_sync_at is not None:
            modified_at = func.coalesce(Appointment.updated_at, Appointment.created_at)
            stmt = stmt.where(
                or_(
                    modified_at > integration.last_sync_at,
                    Appointment.sync_status != SyncStatus.SYNCED.value,
                )
            )
        stmt = stmt.order_by(Appointment.date_start.asc().nulls_last(), Appointment.id)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def _finish(self, integration: CalendarIntegration, result: OutboundSyncResult) -> None:
        integration.last_sync_at = self._clock()
        integration.sync_error_count = result.failed
        integration.last_sync_error = result.summary()
        await self._session.commit()

    async def _sync_appointment(
        self,
        repository: CalendarRepository,
        integration: CalendarIntegration,
        appointment: Appointment,
        result: OutboundSyncResult,
    ) -> None:
        appointment_id = str(appointment.id)

        if appointment.date_start is None:
            self._fail(appointment, result, MISSING_START_DATE)
            return

        payload = self._adapter.build_payload(
            appointment,
            timezone_name=self._settings.calendar_timezone,
            default_minutes=self._settings.default_appointment_minutes,
        )
        target_calendar = integration.target_calendar_id

        try:
            if not appointment.external_event_id:
                event = await repository.create_event(target_calendar, payload)
                self._mark_synced(appointment, target_calendar, event)
                result.created += 1
                return

            calendar_id = appointment.external_calendar_id or target_calendar
            existing = await repository.get_event(calendar_id, appointment.external_event_id)

            if existing is None or existing.is_cancelled:
                logger.info(
                    f"Event {appointment.external_event_id} for appointment "
                    f"{appointment_id} was deleted provider-side; recreating"
                )
                event = await repository.create_event(target_calendar, payload)
                self._mark_synced(appointment, target_calendar, event)
                result.created += 1
                return

            locally_modified = appointment.modified_since(appointment.last_synced_at)
            provider_modified = existing.etag != appointment.external_etag

            if not provider_modified and not locally_modified:
                result.skipped += 1
                return

            if provider_modified and locally_modified:
                operator_cleared = await self._conflicts.closed_since(
                    integration.organisation_id,
                    appointment_id,
                    existing.id,
                    since=appointment.modified_at,
                )
                if not operator_cleared:
                    await self._open_conflict(integration, appointment, existing)
                    result.conflicts += 1
                    self._fail(appointment, result, CONFLICT_PENDING)
                    return

            event = await repository.update_event(calendar_id, existing.id, payload)
            self._mark_synced(appointment, calendar_id, event)
            result.updated += 1

        except GoogleCalendarError as e:
            logger.warning(
                f"Push failed for appointment {appointment_id}: {e.display_reason}"
            )
            self._fail(appointment, result, e.display_reason, e.status_code)

    def _mark_synced(
        self,
        appointment: Appointment,
        calendar_id: str,
        event: CalendarEvent,
    ) -> None:
        appointment.mark_synced(
            calendar_id=calendar_id,
            event_id=event.id,
            etag=event.etag,
            synced_at=self._clock(),
        )

    def _fail(
        self,
        appointment: Appointment,
        result: OutboundSyncResult,
        reason: str,
        provider_code: Optional[int] = None,
    ) -> None:
        appointment.mark_error(reason)
        result.record_failure(str(appointment.id), reason, provider_code)

    async def _open_conflict(
        self,
        integration: CalendarIntegration,
        appointment: Appointment,
        existing: CalendarEvent,
    ) -> None:
        modified_at = appointment.modified_at
        await self._conflicts.open(
            integration.organisation_id,
            internal_id=str(appointment.id),
            external_id=existing.id,
            reason="Appointment and provider event were both modified since the last sync",
            source=ConflictSource.GOOGLE,
            payload={
                "internal": {
                    "title": appointment.title,
                    "date_start": appointment.date_start.isoformat(),
                    "modified_at": modified_at.isoformat() if modified_at else None,
                    "etag": appointment.external_etag,
                },
                "external": {
                    "title": existing.title,
                    "start_time": existing.start_time.isoformat() if existing.start_time else None,
                    "updated_at": existing.updated_at.isoformat() if existing.updated_at else None,
                    "etag": existing.etag,
                },
            },
            detected_at=self._clock(),
        )
