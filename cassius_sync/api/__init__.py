"""
Cassius Calendar Sync API module.

Provides FastAPI HTTP endpoints for calendar connection, sync and conflicts.
"""

from cassius_sync.api.main import app, run_server

__all__ = ["app", "run_server"]
