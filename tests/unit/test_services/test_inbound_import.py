"""Tests for the inbound import engine."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from cassius_sync.models.base import utc_now
from cassius_sync.models.conflicts import SyncConflict
from cassius_sync.models.mirror import MirroredEvent
from cassius_sync.services.errors import NO_INTEGRATION, SyncConfigurationError
from cassius_sync.services.inbound_import import (
    CANCELLED,
    NEW,
    SELF_ORIGIN,
    UNCHANGED,
    UPDATE,
    InboundImportEngine,
    InvalidImportWindowError,
    classify_event,
)
from cassius_sync.services.outbound_sync import OutboundSyncEngine


@pytest.fixture
def engine(db_session, repository_factory, token_manager):
    return InboundImportEngine(
        db_session,
        repository_factory=repository_factory,
        token_manager=token_manager,
    )


async def mirror_rows(session) -> list[MirroredEvent]:
    result = await session.execute(select(MirroredEvent).order_by(MirroredEvent.provider_event_id))
    return list(result.scalars().all())


class TestClassifyEvent:

    def test_self_origin_by_title(self, make_provider_event):
        event = make_provider_event("e1", title="[Cassius] Consultation")
        assert classify_event(event, None) == SELF_ORIGIN

    def test_self_origin_by_property(self, make_provider_event):
        event = make_provider_event("e1", metadata={"cassiusAppointmentId": "abc"})
        assert classify_event(event, None) == SELF_ORIGIN

    def test_new(self, make_provider_event):
        assert classify_event(make_provider_event("e1"), None) == NEW

    def test_unchanged_when_etag_matches(self, make_provider_event):
        row = MirroredEvent(provider_event_id="e1", etag='"v1"')
        assert classify_event(make_provider_event("e1", etag='"v1"'), row) == UNCHANGED

    def test_update_when_etag_differs(self, make_provider_event):
        row = MirroredEvent(provider_event_id="e1", etag='"v1"')
        assert classify_event(make_provider_event("e1", etag='"v2"'), row) == UPDATE

    def test_cancelled_with_mirror_row(self, make_provider_event):
        row = MirroredEvent(provider_event_id="e1", etag='"v1"')
        event = make_provider_event("e1", etag='"v2"', status="cancelled")
        assert classify_event(event, row) == CANCELLED

    def test_cancelled_without_mirror_row_is_unchanged(self, make_provider_event):
        event = make_provider_event("e1", status="cancelled")
        assert classify_event(event, None) == UNCHANGED


class TestCommit:

    @pytest.mark.asyncio
    async def test_imports_new_events(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        fake_repository.listing = [
            make_provider_event("e1", title="Congrès ADF", location="Paris"),
            make_provider_event("e2", title="Formation", attendees=["a@example.com"]),
        ]

        result = await engine.commit(organisation_id)

        assert result.fetched == 2
        assert result.created == 2
        assert result.failed == 0
        rows = await mirror_rows(db_session)
        assert [row.provider_event_id for row in rows] == ["e1", "e2"]
        assert rows[0].summary == "Congrès ADF"
        assert rows[0].location == "Paris"
        assert rows[0].organisation_id == organisation_id
        assert rows[0].calendar_id == "primary"
        assert rows[1].attendees == ["a@example.com"]
        assert integration.last_import_at is not None

    @pytest.mark.asyncio
    async def test_self_origin_events_are_never_mirrored(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        fake_repository.listing = [
            make_provider_event("e1", title="[Cassius] Consultation"),
            make_provider_event("e2", metadata={"cassiusAppointmentId": "x"}),
            make_provider_event("e3"),
        ]

        result = await engine.commit(organisation_id)

        assert result.created == 1
        assert result.skipped == 2
        rows = await mirror_rows(db_session)
        assert [row.provider_event_id for row in rows] == ["e3"]

    @pytest.mark.asyncio
    async def test_pushed_appointments_do_not_come_back(
        self,
        db_session,
        integration,
        make_appointment,
        repository_factory,
        token_manager,
        fake_repository,
        engine,
        organisation_id,
    ):
        await make_appointment()
        await OutboundSyncEngine(
            db_session,
            repository_factory=repository_factory,
            token_manager=token_manager,
        ).sync(organisation_id)
        fake_repository.listing = list(fake_repository.events.values())

        result = await engine.commit(organisation_id)

        assert result.created == 0
        assert result.skipped == 1
        assert await mirror_rows(db_session) == []

    @pytest.mark.asyncio
    async def test_reimport_updates_changed_and_skips_unchanged(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        fake_repository.listing = [make_provider_event("e1"), make_provider_event("e2")]
        await engine.commit(organisation_id)

        fake_repository.listing = [
            make_provider_event("e1"),
            make_provider_event("e2", etag='"v2"', title="Formation (salle B)"),
        ]
        result = await engine.commit(organisation_id)

        assert (result.created, result.updated, result.skipped) == (0, 1, 1)
        rows = await mirror_rows(db_session)
        assert rows[1].summary == "Formation (salle B)"
        assert rows[1].etag == '"v2"'

    @pytest.mark.asyncio
    async def test_cancellation_keeps_mirrored_content(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        fake_repository.listing = [make_provider_event("e1", title="Congrès ADF")]
        await engine.commit(organisation_id)

        # The provider strips content from cancelled events
        fake_repository.listing = [
            make_provider_event("e1", etag='"v2"', status="cancelled", title=None, start_time=None),
        ]
        result = await engine.commit(organisation_id)

        assert result.cancelled == 1
        rows = await mirror_rows(db_session)
        assert len(rows) == 1
        assert rows[0].status == "cancelled"
        assert rows[0].summary == "Congrès ADF"
        assert rows[0].start_at is not None

    @pytest.mark.asyncio
    async def test_unknown_cancelled_event_is_skipped(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        fake_repository.listing = [make_provider_event("e1", status="cancelled")]

        result = await engine.commit(organisation_id)

        assert result.skipped == 1
        assert result.cancelled == 0
        assert await mirror_rows(db_session) == []

    @pytest.mark.asyncio
    async def test_failed_event_does_not_abort_import(
        self, db_session, integration, repository_factory, token_manager, fake_repository,
        make_provider_event, organisation_id
    ):
        class FlakyImportEngine(InboundImportEngine):
            def _upsert(self, integration, calendar_id, event, row, classification, now):
                if event.id == "e2":
                    raise ValueError("unparseable event")
                return super()._upsert(integration, calendar_id, event, row, classification, now)

        engine = FlakyImportEngine(
            db_session,
            repository_factory=repository_factory,
            token_manager=token_manager,
        )
        fake_repository.listing = [
            make_provider_event("e1"),
            make_provider_event("e2"),
            make_provider_event("e3"),
        ]

        result = await engine.commit(organisation_id)

        assert result.created == 2
        assert result.failed == 1
        assert result.failures[0].event_id == "e2"
        assert result.failures[0].reason == "unparseable event"
        rows = await mirror_rows(db_session)
        assert [row.provider_event_id for row in rows] == ["e1", "e3"]

    @pytest.mark.asyncio
    async def test_import_does_not_require_outbound_sync_enabled(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        integration.is_enabled = False
        await db_session.commit()
        fake_repository.listing = [make_provider_event("e1")]

        result = await engine.commit(organisation_id)

        assert result.created == 1

    @pytest.mark.asyncio
    async def test_no_integration(self, engine, organisation_id):
        with pytest.raises(SyncConfigurationError) as exc_info:
            await engine.commit(organisation_id)

        assert exc_info.value.reason == NO_INTEGRATION


class TestCalendarSelection:

    @pytest.mark.asyncio
    async def test_defaults_to_primary(self, engine, integration, fake_repository, organisation_id):
        result = await engine.commit(organisation_id)

        assert result.calendar_id == "primary"
        assert fake_repository.calls[-1][1] == "primary"

    @pytest.mark.asyncio
    async def test_uses_source_calendar(
        self, engine, integration, fake_repository, db_session, organisation_id
    ):
        integration.source_calendar_id = "agenda-formations@group.calendar.google.com"
        await db_session.commit()

        result = await engine.commit(organisation_id)

        assert result.calendar_id == "agenda-formations@group.calendar.google.com"

    @pytest.mark.asyncio
    async def test_explicit_calendar_wins(
        self, engine, integration, fake_repository, db_session, organisation_id
    ):
        integration.source_calendar_id = "agenda-formations@group.calendar.google.com"
        await db_session.commit()

        result = await engine.commit(organisation_id, calendar_id="other")

        assert result.calendar_id == "other"


class TestWindow:

    def test_defaults(self):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        engine = InboundImportEngine(MagicMock(), clock=lambda: now)

        time_min, time_max = engine.default_window()

        assert time_min == now - timedelta(days=30)
        assert time_max == now + timedelta(days=90)

    def test_inverted_window_is_rejected(self):
        engine = InboundImportEngine(MagicMock())
        start = datetime(2026, 11, 1, tzinfo=timezone.utc)

        with pytest.raises(InvalidImportWindowError):
            engine.default_window(start, start - timedelta(days=1))

    def test_naive_bounds_are_utc(self):
        engine = InboundImportEngine(MagicMock())

        time_min, _ = engine.default_window(datetime(2026, 11, 1), datetime(2026, 12, 1))

        assert time_min.tzinfo is not None


class TestPreview:

    @pytest.mark.asyncio
    async def test_preview_classifies_without_writing(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        fake_repository.listing = [make_provider_event("e1")]
        await engine.commit(organisation_id)
        last_import_at = integration.last_import_at

        fake_repository.listing = [
            make_provider_event("e1"),
            make_provider_event("e2"),
            make_provider_event("e3", title="[Cassius] Consultation"),
        ]
        preview = await engine.preview(organisation_id)

        assert preview.counts == {UNCHANGED: 1, NEW: 1, SELF_ORIGIN: 1}
        assert [item.event_id for item in preview.items] == ["e1", "e2", "e3"]
        count = await db_session.scalar(select(func.count()).select_from(MirroredEvent))
        assert count == 1
        assert integration.last_import_at == last_import_at

    @pytest.mark.asyncio
    async def test_list_events_returns_normalized_events(
        self, engine, integration, fake_repository, make_provider_event, organisation_id
    ):
        fake_repository.listing = [make_provider_event("e1")]

        calendar, events = await engine.list_events(organisation_id)

        assert calendar == "primary"
        assert [event.id for event in events] == ["e1"]


class TestIncremental:

    @pytest.mark.asyncio
    async def test_first_run_scans_window_and_stores_token(
        self, engine, integration, fake_repository, make_provider_event, organisation_id
    ):
        fake_repository.listing = [make_provider_event("e1")]
        fake_repository.next_sync_token = "token-A"

        result = await engine.incremental(organisation_id)

        assert result.created == 1
        assert result.used_sync_token is False
        assert result.full_rescan is False
        assert fake_repository.calls[-1] == ("list", "primary", None)
        assert integration.sync_token == "token-A"
        assert integration.sync_token_calendar_id == "primary"

    @pytest.mark.asyncio
    async def test_uses_stored_token(
        self, engine, integration, fake_repository, db_session, organisation_id
    ):
        integration.store_sync_token("primary", "token-A")
        await db_session.commit()
        fake_repository.next_sync_token = "token-B"

        result = await engine.incremental(organisation_id)

        assert result.used_sync_token is True
        assert fake_repository.calls[-1] == ("list", "primary", "token-A")
        assert integration.sync_token == "token-B"

    @pytest.mark.asyncio
    async def test_invalid_token_falls_back_to_full_rescan(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        integration.store_sync_token("primary", "token-expired")
        await db_session.commit()
        fake_repository.invalid_sync_tokens = {"token-expired"}
        fake_repository.listing = [make_provider_event("e1")]
        fake_repository.next_sync_token = "token-fresh"

        result = await engine.incremental(organisation_id)

        assert result.full_rescan is True
        assert result.used_sync_token is False
        assert result.created == 1
        list_calls = [call for call in fake_repository.calls if call[0] == "list"]
        assert list_calls == [("list", "primary", "token-expired"), ("list", "primary", None)]
        assert integration.sync_token == "token-fresh"

    @pytest.mark.asyncio
    async def test_token_of_previous_source_calendar_is_not_sent(
        self, engine, integration, fake_repository, make_provider_event, db_session, organisation_id
    ):
        integration.store_sync_token("primary", "token-A")
        integration.source_calendar_id = "agenda-formations@group.calendar.google.com"
        await db_session.commit()
        fake_repository.listing = [make_provider_event("e1")]
        fake_repository.next_sync_token = "token-formations"

        result = await engine.incremental(organisation_id)

        assert result.used_sync_token is False
        list_calls = [call for call in fake_repository.calls if call[0] == "list"]
        assert list_calls == [("list", "agenda-formations@group.calendar.google.com", None)]
        assert integration.sync_token == "token-formations"
        assert integration.sync_token_calendar_id == "agenda-formations@group.calendar.google.com"


class TestSelfOriginConflict:

    @pytest.mark.asyncio
    async def test_edited_cassius_event_with_pending_local_change(
        self,
        db_session,
        integration,
        make_appointment,
        repository_factory,
        token_manager,
        fake_repository,
        engine,
        organisation_id,
    ):
        appointment = await make_appointment(title="Bilan")
        await OutboundSyncEngine(
            db_session,
            repository_factory=repository_factory,
            token_manager=token_manager,
        ).sync(organisation_id)
        edited = fake_repository.edit_remotely(
            "primary", appointment.external_event_id, title="[Cassius] Bilan (moved)"
        )
        appointment.title = "Bilan complet"
        appointment.updated_at = utc_now()
        await db_session.commit()
        fake_repository.listing = [edited]

        result = await engine.commit(organisation_id)

        assert result.conflicts == 1
        assert await mirror_rows(db_session) == []
        conflicts = (await db_session.execute(select(SyncConflict))).scalars().all()
        assert len(conflicts) == 1
        assert conflicts[0].internal_id == str(appointment.id)
        assert conflicts[0].external_id == edited.id

    @pytest.mark.asyncio
    async def test_untouched_cassius_event_opens_nothing(
        self,
        db_session,
        integration,
        make_appointment,
        repository_factory,
        token_manager,
        fake_repository,
        engine,
        organisation_id,
    ):
        await make_appointment()
        await OutboundSyncEngine(
            db_session,
            repository_factory=repository_factory,
            token_manager=token_manager,
        ).sync(organisation_id)
        fake_repository.listing = list(fake_repository.events.values())

        result = await engine.commit(organisation_id)

        assert result.conflicts == 0
        conflicts = (await db_session.execute(select(SyncConflict))).scalars().all()
        assert conflicts == []

    @pytest.mark.asyncio
    async def test_conflict_write_failure_only_fails_that_event(
        self,
        db_session,
        integration,
        make_appointment,
        make_provider_event,
        repository_factory,
        token_manager,
        fake_repository,
        engine,
        organisation_id,
    ):
        appointment = await make_appointment(title="Bilan")
        await OutboundSyncEngine(
            db_session,
            repository_factory=repository_factory,
            token_manager=token_manager,
        ).sync(organisation_id)
        edited = fake_repository.edit_remotely(
            "primary", appointment.external_event_id, title="[Cassius] Bilan (moved)"
        )
        appointment.title = "Bilan complet"
        appointment.updated_at = utc_now()
        await db_session.commit()
        fake_repository.listing = [edited, make_provider_event("external-1")]
        engine._conflicts.open = AsyncMock(side_effect=SQLAlchemyError("disk I/O error"))

        result = await engine.commit(organisation_id)

        assert result.failed == 1
        assert result.failures[0].event_id == edited.id
        assert result.created == 1
        assert [row.provider_event_id for row in await mirror_rows(db_session)] == ["external-1"]
