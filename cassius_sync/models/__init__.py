"""
SQLAlchemy models for Cassius Calendar Sync.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

# Import base classes
from cassius_sync.models.base import Base, BaseModel, GUID, get_json_type, as_utc, utc_now

# Import all models (must be imported for Alembic autogenerate)
from cassius_sync.models.integrations import CalendarIntegration
from cassius_sync.models.appointments import Appointment, SyncStatus
from cassius_sync.models.mirror import MirroredEvent
from cassius_sync.models.conflicts import ConflictSource, ConflictStatus, SyncConflict

# Export all for easy importing
__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    "get_json_type",
    "as_utc",
    "utc_now",
    # Credential store
    "CalendarIntegration",
    # Appointments
    "Appointment",
    "SyncStatus",
    # Mirror
    "MirroredEvent",
    # Conflicts
    "SyncConflict",
    "ConflictStatus",
    "ConflictSource",
]
