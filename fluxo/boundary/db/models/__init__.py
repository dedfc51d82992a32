"""
Database models package.

Exports:
  - UserModel: Account record
  - SubscriptionModel: Per-user billing state
  - WebhookEventModel: Processed gateway event IDs
  - SourceModel, SourceChunkModel: Knowledge-base documents and chunks

Dependencies: sqlalchemy, fluxo.boundary.db.base
System role: Database model definitions for domain entities
"""

from fluxo.boundary.db.models.user_model import UserModel
from fluxo.boundary.db.models.subscription_model import SubscriptionModel
from fluxo.boundary.db.models.webhook_event_model import WebhookEventModel
from fluxo.boundary.db.models.source_model import SourceChunkModel, SourceModel

__all__ = [
    "UserModel",
    "SubscriptionModel",
    "WebhookEventModel",
    "SourceModel",
    "SourceChunkModel",
]
