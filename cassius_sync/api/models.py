"""
Pydantic request and response models for the Cassius Calendar Sync API.

Request bodies accept the camelCase field names used by the web
application; responses use snake_case.
"""

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cassius_sync.models.conflicts import ConflictStatus


# =============================================================================
# Request Models
# =============================================================================


class ImportRequest(BaseModel):
    """Request to preview or commit an import window."""

    model_config = ConfigDict(populate_by_name=True)

    calendar_id: Optional[str] = Field(
        None,
        alias="calendarId",
        description="Calendar to import from (defaults to the source calendar, then 'primary')",
    )
    time_min: Optional[datetime] = Field(
        None,
        alias="timeMin",
        description="Window start (defaults to the configured past window)",
    )
    time_max: Optional[datetime] = Field(
        None,
        alias="timeMax",
        description="Window end (defaults to the configured future window)",
    )
    mode: Literal["preview", "import"] = Field(
        "preview",
        description="'preview' classifies events without writing; 'import' commits them",
    )

    @model_validator(mode="after")
    def validate_window(self) -> "ImportRequest":
        if self.time_min and self.time_max and self.time_min >= self.time_max:
            raise ValueError("timeMin must be before timeMax")
        return self


class IntegrationSettingsRequest(BaseModel):
    """Calendar selection and switches for an integration."""

    model_config = ConfigDict(populate_by_name=True)

    target_calendar_id: Optional[str] = Field(None, alias="targetCalendarId")
    target_calendar_name: Optional[str] = Field(None, alias="targetCalendarName")
    source_calendar_id: Optional[str] = Field(None, alias="sourceCalendarId")
    source_calendar_name: Optional[str] = Field(None, alias="sourceCalendarName")
    is_enabled: Optional[bool] = Field(None, alias="isEnabled")
    import_enabled: Optional[bool] = Field(None, alias="importEnabled")


class ConflictUpdateRequest(BaseModel):
    """Operator decision on a conflict."""

    status: ConflictStatus = Field(..., description="'resolved' or 'ignored'")


# =============================================================================
# Integration Responses
# =============================================================================


class ConnectResponse(BaseModel):
    """Consent URL for starting the OAuth flow."""

    authorization_url: str


class IntegrationStatusResponse(BaseModel):
    """Connection state, calendar selection and sync counters."""

    configured: bool = Field(..., description="Server-side OAuth settings are present")
    connected: bool = Field(..., description="The organisation holds a refresh token")
    enabled: bool = False
    provider: str = "google"
    email: Optional[str] = None
    target_calendar_id: Optional[str] = None
    target_calendar_name: Optional[str] = None
    source_calendar_id: Optional[str] = None
    source_calendar_name: Optional[str] = None
    import_enabled: bool = False
    last_sync_at: Optional[datetime] = None
    last_import_at: Optional[datetime] = None
    sync_error_count: int = 0
    last_sync_error: Optional[str] = None
    missing_configuration: list[str] = Field(default_factory=list)


class CalendarResponse(BaseModel):
    id: str
    name: str
    primary: bool = False
    access_role: Optional[str] = None
    timezone: Optional[str] = None


class CalendarListResponse(BaseModel):
    calendars: list[CalendarResponse]


class DisconnectResponse(BaseModel):
    disconnected: bool
    message: str


# =============================================================================
# Sync Responses
# =============================================================================


class SyncFailureResponse(BaseModel):
    appointment_id: str
    reason: str
    provider_code: Optional[int] = None


class OutboundSyncResponse(BaseModel):
    """Per-batch push outcome; every failure is listed."""

    created: int
    updated: int
    skipped: int
    failed: int
    conflicts: int
    total: int
    failures: list[SyncFailureResponse]
    nothing_to_sync: bool


class ProviderEventResponse(BaseModel):
    """Normalized provider event."""

    id: str
    calendar_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: bool = False
    location: Optional[str] = None
    attendees: list[str] = Field(default_factory=list)
    status: str = "confirmed"
    etag: Optional[str] = None
    html_link: Optional[str] = None
    updated_at: Optional[datetime] = None
    self_origin: bool = False


class EventListResponse(BaseModel):
    calendar_id: str
    events: list[ProviderEventResponse]
    total: int


class PreviewItemResponse(BaseModel):
    event_id: str
    classification: Literal["new", "update", "unchanged", "cancelled", "self_origin"]
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: bool = False
    status: str = "confirmed"


class ImportPreviewResponse(BaseModel):
    mode: Literal["preview"] = "preview"
    calendar_id: str
    counts: dict[str, int]
    items: list[PreviewItemResponse]


class ImportFailureResponse(BaseModel):
    event_id: str
    reason: str


class ImportResultResponse(BaseModel):
    mode: Literal["import"] = "import"
    calendar_id: str
    fetched: int
    created: int
    updated: int
    cancelled: int
    skipped: int
    failed: int
    conflicts: int
    failures: list[ImportFailureResponse]
    used_sync_token: bool
    full_rescan: bool


# =============================================================================
# Conflict Responses
# =============================================================================


class ConflictResponse(BaseModel):
    """A sync conflict awaiting (or after) operator review."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    source: str
    entity_type: str
    internal_id: Optional[str] = None
    external_id: Optional[str] = None
    reason: str
    payload: Optional[dict[str, Any]] = None
    status: str
    detected_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None


class ConflictListResponse(BaseModel):
    conflicts: list[ConflictResponse]
    total: int


# =============================================================================
# System Responses
# =============================================================================


class ErrorResponse(BaseModel):
    """Error response with details."""

    error_type: str = Field(
        ...,
        description="Error category (sync_configuration, credential, provider, validation)",
    )
    message: str = Field(..., description="Human-readable error message")
    retryable: bool = Field(False, description="Whether the request can be retried")
    reason: Optional[str] = Field(None, description="Machine-readable reason code")


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"]
    version: str
    database_connected: bool
    oauth_configured: bool
