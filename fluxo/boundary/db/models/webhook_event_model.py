"""
Processed webhook event ORM model.

Records gateway event IDs once their handling committed, so redelivered
events are acknowledged without being applied twice.

Dependencies: sqlalchemy, fluxo.boundary.db.base
System role: Webhook delivery deduplication
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from fluxo.boundary.db.base import Base, UUIDMixin, TimestampMixin


class WebhookEventModel(Base, UUIDMixin, TimestampMixin):
    """
    Processed webhook event.

    Attributes:
        event_id: Gateway event ID (unique)
        type: Gateway event type
    """

    __tablename__ = "webhook_events"

    event_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(128), nullable=False)
