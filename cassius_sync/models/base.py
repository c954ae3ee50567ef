"""
Shared SQLAlchemy building blocks.

Every table has a UUID primary key, audit timestamps and a soft-delete
column. The same models run on SQLite (development, tests) and PostgreSQL
(production), so UUID and JSON columns pick a dialect-specific type.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, JSON, TypeDecorator, func
from sqlalchemy.dialects.postgresql import JSONB, UUID as PostgreSQL_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import CHAR

from cassius_sync.config import get_settings


class GUID(TypeDecorator):
    """
    UUID column stored natively on PostgreSQL and as 32 hex chars elsewhere.

    Values always come back as ``uuid.UUID``.
    """

    impl = CHAR(32)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgreSQL_UUID())
        return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return str(value) if dialect.name == "postgresql" else value.hex

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


def get_json_type():
    """JSONB on PostgreSQL (indexable conflict payloads), plain JSON otherwise."""
    if "postgres" in get_settings().database_url.lower():
        return JSONB
    return JSON


class Base(DeclarativeBase):
    type_annotation_map = {
        uuid.UUID: GUID,
    }


class BaseModel(Base):
    """
    Abstract base for Cassius sync tables.

    Columns:
    - id: UUID primary key, generated client-side
    - created_at: insertion time, set by the database
    - updated_at: last row update, bumped by the database on UPDATE
    - deleted_at: soft deletion time, NULL while the row is live
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        primary_key=True,
        default=uuid.uuid4,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    def soft_delete(self) -> None:
        """Hide the row from sync without removing it."""
        self.deleted_at = utc_now()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    SQLite returns naive datetimes for DateTime(timezone=True) columns;
    those are stored as UTC and are tagged accordingly.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
