"""
Database table creation script.

Creates all tables defined in ORM models using SQLAlchemy metadata.

Dependencies: sqlalchemy, fluxo.configs
System role: Database schema initialization

Usage:
    python -m fluxo.boundary.db.create_tables
"""

import asyncio
import logging

from fluxo.boundary.db.base import Base
from fluxo.boundary.db.connection import get_async_engine

# Import all models to register them with Base.metadata
from fluxo.boundary.db.models import (  # noqa: F401
    SourceChunkModel,
    SourceModel,
    SubscriptionModel,
    UserModel,
    WebhookEventModel,
)

logger = logging.getLogger(__name__)


async def create_all_tables() -> None:
    """
    Create all database tables from registered ORM models.

    Idempotent: calls CREATE TABLE IF NOT EXISTS for each model, so safe
    to run multiple times. Existing tables remain unchanged.

    Raises:
        SQLAlchemyError: If database connection fails or table creation fails
    """
    engine = get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("All tables created successfully")


if __name__ == "__main__":
    from fluxo.observability.logger import configure_logging

    configure_logging()
    asyncio.run(create_all_tables())
