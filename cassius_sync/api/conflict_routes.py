"""
Sync conflict routes.

Conflicts are listed for operator review and closed only through PATCH;
nothing in the sync engines resolves them automatically.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from cassius_sync.api.dependencies import get_conflict_register, get_organisation_id
from cassius_sync.api.models import (
    ConflictListResponse,
    ConflictResponse,
    ConflictUpdateRequest,
)
from cassius_sync.models.conflicts import ConflictStatus
from cassius_sync.services.conflicts import ConflictRegister

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["conflicts"])


@router.get("/conflicts", response_model=ConflictListResponse)
async def list_conflicts(
    status: Optional[ConflictStatus] = Query(None, description="Filter by status"),
    organisation_id: str = Depends(get_organisation_id),
    register: ConflictRegister = Depends(get_conflict_register),
) -> ConflictListResponse:
    """List the organisation's conflicts, newest first."""
    conflicts = await register.list_conflicts(organisation_id, status)
    return ConflictListResponse(
        conflicts=[ConflictResponse.model_validate(conflict) for conflict in conflicts],
        total=len(conflicts),
    )


@router.patch("/conflicts/{conflict_id}", response_model=ConflictResponse)
async def update_conflict(
    conflict_id: uuid.UUID,
    request: ConflictUpdateRequest,
    organisation_id: str = Depends(get_organisation_id),
    register: ConflictRegister = Depends(get_conflict_register),
    x_user_id: Optional[str] = Header(None, description="Operator closing the conflict"),
) -> ConflictResponse:
    """Mark a conflict resolved or ignored."""
    conflict = await register.resolve(
        organisation_id,
        conflict_id,
        request.status,
        actor=x_user_id,
    )
    return ConflictResponse.model_validate(conflict)
