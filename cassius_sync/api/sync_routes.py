"""
Calendar sync routes.

- POST /sync-now - Push appointments to the target calendar
- GET /events - Normalized provider events in a window
- POST /import - Preview or commit an import window
- POST /import/incremental - Import changes since the last continuation token
"""

import logging
from datetime import datetime
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query

from cassius_sync.api.dependencies import (
    get_import_engine,
    get_organisation_id,
    get_outbound_engine,
)
from cassius_sync.api.models import (
    EventListResponse,
    ImportPreviewResponse,
    ImportRequest,
    ImportResultResponse,
    OutboundSyncResponse,
    PreviewItemResponse,
    ProviderEventResponse,
)
from cassius_sync.integrations.google_calendar.adapter import is_self_origin
from cassius_sync.services.inbound_import import InboundImportEngine
from cassius_sync.services.outbound_sync import OutboundSyncEngine
from cassius_sync.services.results import ImportResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations/google", tags=["sync"])


def _import_response(result: ImportResult) -> ImportResultResponse:
    return ImportResultResponse(**result.to_dict())


@router.post("/sync-now", response_model=OutboundSyncResponse)
async def sync_now(
    organisation_id: str = Depends(get_organisation_id),
    engine: OutboundSyncEngine = Depends(get_outbound_engine),
) -> OutboundSyncResponse:
    """
    Push the organisation's appointments to its target calendar.

    Item failures do not fail the request: they are listed in ``failures``.
    """
    result = await engine.sync(organisation_id)
    return OutboundSyncResponse(**result.to_dict())


@router.get("/events", response_model=EventListResponse)
async def list_events(
    calendar_id: Optional[str] = Query(None, alias="calendarId"),
    time_min: Optional[datetime] = Query(None, alias="timeMin"),
    time_max: Optional[datetime] = Query(None, alias="timeMax"),
    organisation_id: str = Depends(get_organisation_id),
    engine: InboundImportEngine = Depends(get_import_engine),
) -> EventListResponse:
    """List provider events in a window (defaults to the configured import window)."""
    calendar, events = await engine.list_events(
        organisation_id,
        calendar_id=calendar_id,
        time_min=time_min,
        time_max=time_max,
    )

    return EventListResponse(
        calendar_id=calendar,
        events=[
            ProviderEventResponse(
                id=event.id,
                calendar_id=event.calendar_id,
                title=event.title,
                description=event.description,
                start_time=event.start_time,
                end_time=event.end_time,
                all_day=event.all_day,
                location=event.location,
                attendees=event.attendees,
                status=event.status,
                etag=event.etag,
                html_link=event.html_link,
                updated_at=event.updated_at,
                self_origin=is_self_origin(event),
            )
            for event in events
        ],
        total=len(events),
    )


@router.post("/import", response_model=Union[ImportPreviewResponse, ImportResultResponse])
async def import_events(
    request: ImportRequest,
    organisation_id: str = Depends(get_organisation_id),
    engine: InboundImportEngine = Depends(get_import_engine),
):
    """
    Preview or commit an import of provider events into the local mirror.

    Events written by Cassius are never imported.
    """
    if request.mode == "preview":
        preview = await engine.preview(
            organisation_id,
            calendar_id=request.calendar_id,
            time_min=request.time_min,
            time_max=request.time_max,
        )
        return ImportPreviewResponse(
            calendar_id=preview.calendar_id,
            counts=preview.counts,
            items=[
                PreviewItemResponse(
                    event_id=item.event_id,
                    classification=item.classification,
                    title=item.title,
                    start_time=item.start_time,
                    end_time=item.end_time,
                    all_day=item.all_day,
                    status=item.status,
                )
                for item in preview.items
            ],
        )

    result = await engine.commit(
        organisation_id,
        calendar_id=request.calendar_id,
        time_min=request.time_min,
        time_max=request.time_max,
    )
    return _import_response(result)


@router.post("/import/incremental", response_model=ImportResultResponse)
async def import_incremental(
    organisation_id: str = Depends(get_organisation_id),
    engine: InboundImportEngine = Depends(get_import_engine),
) -> ImportResultResponse:
    """Import changes since the last stored continuation token."""
    result = await engine.incremental(organisation_id)
    return _import_response(result)
