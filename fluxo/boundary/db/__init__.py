"""
Database boundary package.

Exports the declarative base, connection helpers, and ORM models.

Dependencies: sqlalchemy
System role: Persistence layer
"""

from fluxo.boundary.db.base import Base
from fluxo.boundary.db.connection import (
    get_async_db,
    get_async_engine,
    get_async_session_factory,
)

__all__ = [
    "Base",
    "get_async_db",
    "get_async_engine",
    "get_async_session_factory",
]
