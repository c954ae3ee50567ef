"""
Inbound import engine (pull).

Mirrors provider events into the local google_calendar_events table. Events
written by the outbound engine (self-origin) are never mirrored, so an
appointment cannot come back as a duplicate.

Classification of a fetched event against the mirror:
- self_origin: written by Cassius, never stored
- unchanged: mirror row has the same etag
- cancelled: provider cancelled an event the mirror holds
- new: no mirror row yet
- update: mirror row exists with a different etag
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cassius_sync.auth.token_manager import TokenLifecycleManager
from cassius_sync.config import Settings, get_settings
from cassius_sync.integrations.base import CalendarEvent, CalendarRepository, EventPage
from cassius_sync.integrations.google_calendar.adapter import (
    is_self_origin,
    linked_appointment_id,
)
from cassius_sync.integrations.google_calendar.exceptions import SyncTokenInvalidError
from cassius_sync.models.appointments import Appointment, SyncStatus
from cassius_sync.models.base import as_utc, utc_now
from cassius_sync.models.conflicts import ConflictSource
from cassius_sync.models.integrations import CalendarIntegration
from cassius_sync.models.mirror import MirroredEvent
from cassius_sync.services.conflicts import ConflictRegister
from cassius_sync.services.integration_access import (
    RepositoryFactory,
    open_repository,
    resolve_integration,
)
from cassius_sync.services.results import ImportPreview, ImportResult, PreviewItem

logger = logging.getLogger(__name__)

NEW = "new"
UPDATE = "update"
UNCHANGED = "unchanged"
CANCELLED = "cancelled"
SELF_ORIGIN = "self_origin"

DEFAULT_CALENDAR = "primary"


class InvalidImportWindowError(ValueError):
    """The requested import window is empty or inverted."""


def classify_event(event: CalendarEvent, row: Optional[MirroredEvent]) -> str:
    """Classify a provider event against its mirror row (if any)."""
    if is_self_origin(event):
        return SELF_ORIGIN
    if row is not None and event.etag is not None and row.etag == event.etag:
        return UNCHANGED
    if event.is_cancelled:
        # Nothing to cancel when the event was never mirrored
        return CANCELLED if row is not None else UNCHANGED
    if row is None:
        return NEW
    return UPDATE


class InboundImportEngine:
    """
    Imports provider events for an organisation.

    Args:
        session: Database session used for the whole import
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
        self._conflicts = ConflictRegister(session)

    def default_window(
        self,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> tuple[datetime, datetime]:
        """
        Fill in missing window bounds from the configured defaults.

        Raises:
            InvalidImportWindowError: If time_min is not before time_max
        """
        now = self._clock()
        time_min = as_utc(time_min)
        time_max = as_utc(time_max)
        if time_min is None:
            time_min = now - timedelta(days=self._settings.import_window_past_days)
        if time_max is None:
            time_max = now + timedelta(days=self._settings.import_window_future_days)
        if time_min >= time_max:
            raise InvalidImportWindowError("timeMin must be before timeMax")
        return time_min, time_max

    async def _prepare(
        self,
        organisation_id: str,
        calendar_id: Optional[str],
    ) -> tuple[CalendarIntegration, str, CalendarRepository]:
        integration = await resolve_integration(
            self._session,
            organisation_id,
            require_enabled=False,
        )
        calendar = calendar_id or integration.source_calendar_id or DEFAULT_CALENDAR
        _, repository = await open_repository(
            self._session,
            integration,
            token_manager=self._token_manager,
            repository_factory=self._repository_factory,
        )
        return integration, calendar, repository

    async def list_events(
        self,
        organisation_id: str,
        calendar_id: Optional[str] = None,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> tuple[str, list[CalendarEvent]]:
        """Fetch normalized provider events in a window without touching the mirror."""
        time_min, time_max = self.default_window(time_min, time_max)
        _, calendar, repository = await self._prepare(organisation_id, calendar_id)
        page = await repository.list_all_events(calendar, time_min=time_min, time_max=time_max)
        return calendar, page.events

    async def preview(
        self,
        organisation_id: str,
        calendar_id: Optional[str] = None,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> ImportPreview:
        """Classify what a commit over the window would do. Writes nothing."""
        time_min, time_max = self.default_window(time_min, time_max)
        integration, calendar, repository = await self._prepare(organisation_id, calendar_id)
        page = await repository.list_all_events(calendar, time_min=time_min, time_max=time_max)

        rows = await self._load_mirror(integration, calendar, page.events)
        preview = ImportPreview(calendar_id=calendar)
        for event in page.events:
            preview.items.append(PreviewItem(
                event_id=event.id,
                classification=classify_event(event, rows.get(event.id)),
                title=event.title,
                start_time=event.start_time,
                end_time=event.end_time,
                all_day=event.all_day,
                status=event.status,
            ))

        logger.info(
            f"Import preview for organisation {organisation_id} on {calendar}: {preview.counts}"
        )
        return preview

    async def commit(
        self,
        organisation_id: str,
        calendar_id: Optional[str] = None,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> ImportResult:
        """Fetch the window and upsert every non-self-origin event into the mirror."""
        time_min, time_max = self.default_window(time_min, time_max)
        integration, calendar, repository = await self._prepare(organisation_id, calendar_id)
        page = await repository.list_all_events(calendar, time_min=time_min, time_max=time_max)

        result = ImportResult(calendar_id=calendar)
        await self._apply(integration, calendar, page.events, result)

        integration.last_import_at = self._clock()
        await self._session.commit()
        self._log_result(organisation_id, result)
        return result

    async def incremental(self, organisation_id: str) -> ImportResult:
        """
        Import changes since the stored continuation token.

        Without a token, or when the provider rejects it, the default window
        is scanned in full. The new token is stored only after the changes
        were applied.
        """
        integration, calendar, repository = await self._prepare(organisation_id, None)
        stored_token = integration.sync_token_for(calendar)
        if integration.sync_token and stored_token is None:
            logger.info(
                f"Stored sync token for organisation {organisation_id} belongs to "
                f"another calendar; scanning {calendar} in full"
            )
        result = ImportResult(calendar_id=calendar)

        page: Optional[EventPage] = None
        if stored_token:
            try:
                page = await repository.list_all_events(calendar, sync_token=stored_token)
                result.used_sync_token = True
            except SyncTokenInvalidError:
                logger.warning(
                    f"Sync token rejected for organisation {organisation_id}; "
                    f"falling back to a full re-scan"
                )
                integration.store_sync_token(calendar, None)
                await self._session.commit()
                result.full_rescan = True

        if page is None:
            time_min, time_max = self.default_window()
            page = await repository.list_all_events(calendar, time_min=time_min, time_max=time_max)

        await self._apply(integration, calendar, page.events, result)

        if page.next_sync_token:
            integration.store_sync_token(calendar, page.next_sync_token)
        integration.last_import_at = self._clock()
        await self._session.commit()
        self._log_result(organisation_id, result)
        return result

    async def _load_mirror(
        self,
        integration: CalendarIntegration,
        calendar_id: str,
        events: Sequence[CalendarEvent],
    ) -> dict[str, MirroredEvent]:
        event_ids = [event.id for event in events if event.id]
        if not event_ids:
            return {}
        stmt = select(MirroredEvent).where(
            MirroredEvent.integration_id == integration.id,
            MirroredEvent.calendar_id == calendar_id,
            MirroredEvent.provider_event_id.in_(event_ids),
        )
        result = await self._session.execute(stmt)
        return {row.provider_event_id: row for row in result.scalars()}

    async def _apply(
        self,
        integration: CalendarIntegration,
        calendar_id: str,
        events: Sequence[CalendarEvent],
        result: ImportResult,
    ) -> None:
        result.fetched = len(events)
        rows = await self._load_mirror(integration, calendar_id, events)
        now = self._clock()

        for event in events:
            row = rows.get(event.id)
            classification = classify_event(event, row)

            if classification == SELF_ORIGIN:
                result.skipped += 1
                try:
                    async with self._session.begin_nested():
                        opened = await self._check_self_origin_conflict(integration, event)
                except Exception as e:
                    logger.warning(f"Failed to check Cassius event {event.id} for conflicts: {e}")
                    result.record_failure(event.id, str(e))
                    continue
                if opened:
                    result.conflicts += 1
                continue

            if classification == UNCHANGED:
                result.skipped += 1
                continue

            try:
                async with self._session.begin_nested():
                    rows[event.id] = self._upsert(
                        integration, calendar_id, event, row, classification, now
                    )
            except Exception as e:
                logger.warning(f"Failed to mirror event {event.id}: {e}")
                result.record_failure(event.id, str(e))
                continue

            if classification == NEW:
                result.created += 1
            elif classification == CANCELLED:
                result.cancelled += 1
            else:
                result.updated += 1

    def _upsert(
        self,
        integration: CalendarIntegration,
        calendar_id: str,
        event: CalendarEvent,
        row: Optional[MirroredEvent],
        classification: str,
        now: datetime,
    ) -> MirroredEvent:
        if row is None:
            row = MirroredEvent(
                organisation_id=integration.organisation_id,
                integration_id=integration.id,
                calendar_id=calendar_id,
                provider_event_id=event.id,
            )
            self._session.add(row)

        row.status = event.status
        row.etag = event.etag
        row.provider_updated_at = event.updated_at
        row.last_synced_at = now

        # A cancellation keeps the previously mirrored content
        if classification != CANCELLED:
            row.summary = event.title
            row.description = event.description
            row.location = event.location
            row.start_at = event.start_time
            row.end_at = event.end_time
            row.all_day = event.all_day
            row.attendees = list(event.attendees)
            row.html_link = event.html_link

        return row

    async def _check_self_origin_conflict(
        self,
        integration: CalendarIntegration,
        event: CalendarEvent,
    ) -> bool:
        """
        Open a conflict when a Cassius-written event changed provider-side
        while its appointment has an unsent local change.
        """
        if event.is_cancelled:
            return False

        conditions = [Appointment.external_event_id == event.id]
        linked_id = linked_appointment_id(event)
        if linked_id:
            try:
                conditions.append(Appointment.id == uuid.UUID(linked_id))
            except ValueError:
                pass

        stmt = select(Appointment).where(
            Appointment.organisation_id == integration.organisation_id,
            Appointment.deleted_at.is_(None),
            or_(*conditions),
        )
        appointment = (await self._session.execute(stmt)).scalars().first()
        if appointment is None or not appointment.external_etag:
            return False

        pending = (
            appointment.sync_status != SyncStatus.SYNCED.value
            or appointment.modified_since(appointment.last_synced_at)
        )
        if not pending or event.etag == appointment.external_etag:
            return False

        await self._conflicts.open(
            integration.organisation_id,
            internal_id=str(appointment.id),
            external_id=event.id,
            reason="Cassius event was modified in the calendar while the appointment has unsynced changes",
            source=ConflictSource.GOOGLE,
            payload={
                "internal": {
                    "title": appointment.title,
                    "etag": appointment.external_etag,
                    "sync_status": appointment.sync_status,
                },
                "external": {
                    "title": event.title,
                    "etag": event.etag,
                    "updated_at": event.updated_at.isoformat() if event.updated_at else None,
                },
            },
            detected_at=self._clock(),
        )
        return True

    def _log_result(self, organisation_id: str, result: ImportResult) -> None:
        logger.info(
            f"Import finished for organisation {organisation_id} on {result.calendar_id}: "
            f"created={result.created} updated={result.updated} "
            f"cancelled={result.cancelled} skipped={result.skipped} failed={result.failed}"
        )
