"""Tests for integration and appointment model helpers."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from cassius_sync.models.appointments import Appointment, SyncStatus
from cassius_sync.models.base import as_utc
from cassius_sync.models.integrations import CalendarIntegration

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestCalendarIntegration:
    """Test token state helpers."""

    def test_needs_refresh_within_margin(self):
        integration = CalendarIntegration(
            organisation_id="org-1",
            access_token="access",
            token_expires_at=NOW + timedelta(minutes=4),
        )

        assert integration.needs_refresh(now=NOW) is True
        assert integration.needs_refresh(now=NOW, margin=timedelta(minutes=1)) is False

    def test_needs_refresh_without_token_or_expiry(self):
        assert CalendarIntegration(
            organisation_id="org-1", token_expires_at=NOW + timedelta(hours=1)
        ).needs_refresh(now=NOW)
        assert CalendarIntegration(
            organisation_id="org-1", access_token="access"
        ).needs_refresh(now=NOW)

    def test_clear_credentials(self):
        integration = CalendarIntegration(
            organisation_id="org-1",
            is_enabled=True,
            access_token="access",
            refresh_token="refresh",
            token_expires_at=NOW,
            sync_token="sync-1",
            target_calendar_id="primary",
        )

        integration.clear_credentials()

        assert integration.is_connected is False
        assert integration.is_enabled is False
        assert integration.sync_token is None
        assert integration.target_calendar_id == "primary"

    def test_sync_token_is_bound_to_its_calendar(self):
        integration = CalendarIntegration(organisation_id="org-1")
        integration.store_sync_token("primary", "sync-1")

        assert integration.sync_token_for("primary") == "sync-1"
        assert integration.sync_token_for("formations@group.calendar.google.com") is None

        integration.store_sync_token("primary", None)
        assert integration.sync_token_calendar_id is None

    @pytest.mark.asyncio
    async def test_one_integration_per_organisation_and_provider(self, db_session, integration):
        db_session.add(CalendarIntegration(organisation_id=integration.organisation_id))
        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()


class TestAppointment:
    """Test sync envelope helpers."""

    def test_modified_since(self):
        appointment = Appointment(organisation_id="org-1", title="Bilan", updated_at=NOW)

        assert appointment.modified_since(None) is True
        assert appointment.modified_since(NOW - timedelta(seconds=1)) is True
        assert appointment.modified_since(NOW) is False

    def test_naive_timestamps_are_utc(self):
        appointment = Appointment(
            organisation_id="org-1", title="Bilan", updated_at=datetime(2026, 10, 19, 12, 0)
        )

        assert appointment.modified_at == NOW
        assert appointment.modified_since(datetime(2026, 10, 19, 11, 0)) is True

    def test_mark_synced_clears_error(self):
        appointment = Appointment(organisation_id="org-1", title="Bilan")
        appointment.mark_error("provider rate limit")

        appointment.mark_synced("primary", "evt-1", '"1"', NOW)

        assert appointment.sync_status == SyncStatus.SYNCED.value
        assert appointment.external_event_id == "evt-1"
        assert appointment.external_provider == "google"
        assert appointment.sync_error is None
        assert appointment.last_synced_at == NOW

    def test_mark_error_keeps_envelope(self):
        appointment = Appointment(organisation_id="org-1", title="Bilan")
        appointment.mark_synced("primary", "evt-1", '"1"', NOW)

        appointment.mark_error("insufficient calendar permissions")

        assert appointment.sync_status == "ERROR"
        assert appointment.external_event_id == "evt-1"
        assert appointment.sync_error == "insufficient calendar permissions"

    @pytest.mark.asyncio
    async def test_defaults_after_insert(self, db_session, make_appointment):
        appointment = await make_appointment("Bilan")

        result = await db_session.execute(
            select(Appointment.sync_status).where(Appointment.id == appointment.id)
        )

        assert result.scalar_one() == SyncStatus.UNSYNCED.value
        assert appointment.is_deleted is False


def test_as_utc():
    assert as_utc(None) is None
    assert as_utc(datetime(2026, 1, 1)) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    plus_two = datetime(2026, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(plus_two) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert as_utc(plus_two).tzinfo == timezone.utc
