"""
CRUD operations for database models.

Exports base CRUD class and model-specific CRUD implementations
with pre-instantiated singletons for direct use.

Usage:
    from fluxo.boundary.db.CRUD import subscription_crud

    subscription = await subscription_crud.get_by_user_id(db, user_id)
"""

from fluxo.boundary.db.CRUD.base_crud import BaseCRUD
from fluxo.boundary.db.CRUD.user_crud import UserCRUD, user_crud
from fluxo.boundary.db.CRUD.subscription_crud import SubscriptionCRUD, subscription_crud
from fluxo.boundary.db.CRUD.webhook_event_crud import WebhookEventCRUD, webhook_event_crud
from fluxo.boundary.db.CRUD.source_crud import (
    SourceChunkCRUD,
    SourceCRUD,
    source_chunk_crud,
    source_crud,
)

__all__ = [
    "BaseCRUD",
    "UserCRUD",
    "user_crud",
    "SubscriptionCRUD",
    "subscription_crud",
    "WebhookEventCRUD",
    "webhook_event_crud",
    "SourceCRUD",
    "source_crud",
    "SourceChunkCRUD",
    "source_chunk_crud",
]
