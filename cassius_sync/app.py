"""
ASGI entry point for Cassius Calendar Sync.

Re-exports the FastAPI app so servers can target ``cassius_sync.app:app``.
"""

from cassius_sync.api.main import app

__all__ = ["app"]
