"""
Bidirectional mapping between appointments and Google Calendar API format.

Handles:
- DateTime formatting (RFC 3339 for Google API) in the practice timezone
- All-day event handling
- The self-origin marker (title prefix and private extended property)
- Attendee mapping
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from dateutil import tz
from dateutil.parser import parse as parse_datetime

from cassius_sync.integrations.base import CalendarEvent, CalendarInfo, EventPayload

# Marker prefixed to every event title written by Cassius
SELF_ORIGIN_PREFIX = "[Cassius]"

# Private extended property linking an event back to its appointment
APPOINTMENT_ID_PROPERTY = "cassiusAppointmentId"


class GoogleCalendarAdapter:
    """Maps between appointments and Google Calendar API format."""

    @staticmethod
    def build_payload(
        appointment,
        timezone_name: str = "UTC",
        default_minutes: int = 30,
    ) -> EventPayload:
        """
        Build the provider payload for an appointment.

        Args:
            appointment: Appointment with a start date
            timezone_name: IANA timezone written alongside the times
            default_minutes: Duration used when the appointment has no end

        Returns:
            EventPayload ready for create/update
        """
        start = _ensure_utc(appointment.date_start)
        end = _ensure_utc(appointment.date_end) if appointment.date_end else None
        if end is None or end <= start:
            end = start + timedelta(minutes=default_minutes)

        return EventPayload(
            appointment_id=str(appointment.id),
            title=appointment.title,
            start_time=start,
            end_time=end,
            description=appointment.description,
            timezone=timezone_name,
        )

    @staticmethod
    def to_google_event(payload: EventPayload) -> dict:
        """
        Convert a payload to Google Calendar API format.

        The title is prefixed with the self-origin marker and the appointment
        ID is stored in a private extended property, so the importer can
        recognise events Cassius wrote.

        Returns:
            Dict suitable for Google Calendar API insert/update
        """
        google_event: dict = {
            "summary": f"{SELF_ORIGIN_PREFIX} {payload.title}",
            "start": {
                "dateTime": _format_datetime(payload.start_time, payload.timezone),
                "timeZone": payload.timezone,
            },
            "end": {
                "dateTime": _format_datetime(payload.end_time, payload.timezone),
                "timeZone": payload.timezone,
            },
            "extendedProperties": {
                "private": {
                    APPOINTMENT_ID_PROPERTY: payload.appointment_id,
                },
            },
        }

        if payload.description:
            google_event["description"] = payload.description

        return google_event

    @staticmethod
    def from_google_event(google_event: dict, calendar_id: str) -> CalendarEvent:
        """
        Convert Google Calendar event to internal format.

        Args:
            google_event: Event from Google Calendar API
            calendar_id: Calendar ID the event belongs to

        Returns:
            CalendarEvent in internal format
        """
        start_data = google_event.get("start") or {}
        end_data = google_event.get("end") or {}

        start_time = None
        end_time = None
        all_day = False

        if "dateTime" in start_data:
            start_time = _parse_datetime(start_data["dateTime"])
            if "dateTime" in end_data:
                end_time = _parse_datetime(end_data["dateTime"])
        elif "date" in start_data:
            start_time = _parse_date(start_data["date"])
            if "date" in end_data:
                end_time = _parse_date(end_data["date"])
            all_day = True

        attendees = []
        for attendee in google_event.get("attendees", []):
            email = attendee.get("email")
            if email:
                attendees.append(email)

        ext_props = google_event.get("extendedProperties") or {}
        private_props = ext_props.get("private") or {}

        updated = google_event.get("updated")

        return CalendarEvent(
            id=google_event.get("id", ""),
            calendar_id=calendar_id,
            title=google_event.get("summary"),
            description=google_event.get("description"),
            start_time=start_time,
            end_time=end_time,
            all_day=all_day,
            location=google_event.get("location"),
            attendees=attendees,
            status=google_event.get("status", "confirmed"),
            etag=google_event.get("etag"),
            html_link=google_event.get("htmlLink"),
            updated_at=_parse_datetime(updated) if updated else None,
            metadata=dict(private_props),
        )

    @staticmethod
    def from_google_calendar(entry: dict) -> CalendarInfo:
        """Convert a calendarList entry."""
        return CalendarInfo(
            id=entry.get("id", ""),
            name=entry.get("summaryOverride") or entry.get("summary") or entry.get("id", ""),
            primary=bool(entry.get("primary", False)),
            access_role=entry.get("accessRole"),
            timezone=entry.get("timeZone"),
        )


def is_self_origin(event: CalendarEvent) -> bool:
    """Check whether an event was written by Cassius."""
    if event.metadata.get(APPOINTMENT_ID_PROPERTY):
        return True
    return bool(event.title and event.title.startswith(SELF_ORIGIN_PREFIX))


def linked_appointment_id(event: CalendarEvent) -> Optional[str]:
    """Appointment ID stored on a self-origin event, if any."""
    return event.metadata.get(APPOINTMENT_ID_PROPERTY)


def format_rfc3339(dt: datetime) -> str:
    """Format a datetime as UTC RFC 3339 (used for list query bounds)."""
    return _ensure_utc(dt).isoformat()


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _format_datetime(dt: datetime, timezone_name: str) -> str:
    """
    Format datetime to RFC 3339 in the given timezone.

    Args:
        dt: Datetime to format (naive values are treated as UTC)
        timezone_name: IANA timezone name

    Returns:
        RFC 3339 formatted string with offset
    """
    zone = tz.gettz(timezone_name) or timezone.utc
    return _ensure_utc(dt).astimezone(zone).isoformat()


def _parse_datetime(dt_str: str) -> datetime:
    """
    Parse datetime string from Google API.

    Args:
        dt_str: RFC 3339 datetime string

    Returns:
        Parsed datetime (UTC)
    """
    return _ensure_utc(parse_datetime(dt_str))


def _parse_date(date_str: str) -> datetime:
    """
    Parse date string from Google API (for all-day events).

    Args:
        date_str: Date string in YYYY-MM-DD format

    Returns:
        Datetime at midnight UTC
    """
    parsed = date.fromisoformat(date_str)
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
