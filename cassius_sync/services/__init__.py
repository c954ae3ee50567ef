"""
Service layer for Cassius Calendar Sync.

Provides the synchronization engines and their shared building blocks:
- Outbound sync (appointments → provider events)
- Inbound import (provider events → local mirror)
- Conflict register
"""

from cassius_sync.services.conflicts import (
    ConflictNotFoundError,
    ConflictRegister,
    ConflictStateError,
)
from cassius_sync.services.errors import SyncConfigurationError
from cassius_sync.services.inbound_import import (
    InboundImportEngine,
    InvalidImportWindowError,
    classify_event,
)
from cassius_sync.services.integration_access import (
    check_stored_credentials,
    open_repository,
    resolve_integration,
)
from cassius_sync.services.outbound_sync import OutboundSyncEngine
from cassius_sync.services.results import (
    ImportFailure,
    ImportPreview,
    ImportResult,
    OutboundSyncResult,
    PreviewItem,
    SyncFailure,
)

__all__ = [
    # Engines
    "OutboundSyncEngine",
    "InboundImportEngine",
    "InvalidImportWindowError",
    "classify_event",
    # Conflicts
    "ConflictRegister",
    "ConflictNotFoundError",
    "ConflictStateError",
    # Integration access
    "SyncConfigurationError",
    "resolve_integration",
    "check_stored_credentials",
    "open_repository",
    # Results
    "OutboundSyncResult",
    "SyncFailure",
    "ImportResult",
    "ImportFailure",
    "ImportPreview",
    "PreviewItem",
]
