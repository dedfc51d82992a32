"""
Declarative base and column mixins shared by the billing and source tables.

Dependencies: sqlalchemy
System role: ORM foundation
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Registry for every Fluxo table; create_all_tables builds from its metadata."""


class UUIDMixin:
    """
    Random UUID primary key.

    The generic Uuid type maps to native UUID on PostgreSQL and CHAR(32)
    on SQLite, so one set of models serves production and the test suite.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    """
    created_at / updated_at columns in UTC.

    updated_at follows ORM flushes and Core UPDATEs through onupdate;
    the subscription upsert writes it itself in the ON CONFLICT clause.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
