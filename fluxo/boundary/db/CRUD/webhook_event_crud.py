"""
Processed webhook event CRUD operations.

Dependencies: sqlalchemy, fluxo.boundary.db.models
System role: Webhook redelivery detection
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.boundary.db.CRUD.base_crud import BaseCRUD
from fluxo.boundary.db.models.webhook_event_model import WebhookEventModel


class WebhookEventCRUD(BaseCRUD[WebhookEventModel]):
    """CRUD operations for WebhookEventModel."""

    def __init__(self) -> None:
        """Initialize WebhookEventCRUD with WebhookEventModel."""
        super().__init__(WebhookEventModel)

    async def is_processed(self, session: AsyncSession, event_id: str) -> bool:
        """
        Check whether a gateway event was already handled.

        Args:
            session: Async database session
            event_id: Gateway event ID (evt_...)

        Returns:
            True if the event ID has been recorded
        """
        stmt = select(WebhookEventModel.id).where(
            WebhookEventModel.event_id == event_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def record(
        self,
        session: AsyncSession,
        event_id: str,
        event_type: str,
    ) -> WebhookEventModel:
        """
        Record a handled gateway event.

        The unique constraint on event_id rejects a concurrent duplicate at
        commit time.

        Args:
            session: Async database session
            event_id: Gateway event ID
            event_type: Gateway event type

        Returns:
            Created WebhookEventModel
        """
        return await self.create(session, event_id=event_id, type=event_type)


webhook_event_crud = WebhookEventCRUD()
