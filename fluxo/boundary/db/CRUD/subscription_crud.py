"""
Subscription CRUD operations.

Provides the per-user lookup, the atomic per-user upsert used by
webhook reconciliation and the bulk transitions of the expiration sweep.

Dependencies: sqlalchemy, fluxo.boundary.db.models
System role: Subscription persistence operations
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.boundary.db.base import utcnow
from fluxo.boundary.db.CRUD.base_crud import BaseCRUD
from fluxo.boundary.db.models.subscription_model import SubscriptionModel

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SubscriptionCRUD(BaseCRUD[SubscriptionModel]):
    """
    CRUD operations for SubscriptionModel.

    Extends BaseCRUD with user-keyed queries. All writes are keyed by
    user_id, which carries a unique constraint.
    """

    def __init__(self) -> None:
        """Initialize SubscriptionCRUD with SubscriptionModel."""
        super().__init__(SubscriptionModel)

    async def get_by_user_id(
        self,
        session: AsyncSession,
        user_id: UUID,
        refresh: bool = False,
    ) -> SubscriptionModel | None:
        """
        Retrieve the subscription owned by a user.

        Args:
            session: Async database session
            user_id: Owning user UUID
            refresh: Overwrite an instance already in the identity map with
                the committed row (needed after waiting on another writer)

        Returns:
            SubscriptionModel if found, None otherwise
        """
        stmt = select(SubscriptionModel).where(SubscriptionModel.user_id == user_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_for_user(
        self,
        session: AsyncSession,
        user_id: UUID,
        **values: Any,
    ) -> SubscriptionModel:
        """
        Insert or update the user's subscription in one statement.

        Runs INSERT ... ON CONFLICT (user_id) DO UPDATE, so two concurrent
        writers for the same user never produce two rows and the last
        statement wins. Only the given fields are overwritten on conflict.

        Args:
            session: Async database session
            user_id: Owning user UUID
            **values: Subscription columns to write (plan_id, status, ...)

        Returns:
            The persisted SubscriptionModel, refreshed from the database

        Raises:
            NotImplementedError: If the bound dialect has no upsert support
        """
        dialect = session.get_bind().dialect.name
        try:
            insert = _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

        now = utcnow()
        stmt = insert(SubscriptionModel).values(
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SubscriptionModel.user_id],
            set_={**values, "updated_at": now},
        ).returning(SubscriptionModel)

        result = await session.scalars(
            stmt, execution_options={"populate_existing": True}
        )
        return result.one()

    async def update_for_user(
        self,
        session: AsyncSession,
        user_id: UUID,
        **values: Any,
    ) -> SubscriptionModel | None:
        """
        Update the user's subscription if it exists.

        Args:
            session: Async database session
            user_id: Owning user UUID
            **values: Columns to overwrite

        Returns:
            Updated SubscriptionModel, or None when the user has no row
        """
        stmt = (
            update(SubscriptionModel)
            .where(SubscriptionModel.user_id == user_id)
            .values(**values)
            .returning(SubscriptionModel)
        )
        result = await session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one_or_none()

    async def mark_past_due(
        self,
        session: AsyncSession,
        now: datetime,
        grace_start: datetime,
    ) -> list[SubscriptionModel]:
        """
        Move active paid subscriptions whose period ended inside the grace window to past_due.

        Args:
            session: Async database session
            now: Reference time
            grace_start: Oldest period end still inside the grace window

        Returns:
            Updated rows
        """
        stmt = (
            update(SubscriptionModel)
            .where(
                SubscriptionModel.status == "active",
                SubscriptionModel.plan_id != "free",
                SubscriptionModel.current_period_end < now,
                SubscriptionModel.current_period_end >= grace_start,
            )
            .values(status="past_due", updated_at=utcnow())
            .returning(SubscriptionModel)
        )
        result = await session.scalars(
            stmt,
            execution_options={"synchronize_session": False, "populate_existing": True},
        )
        return list(result.all())

    async def expire_lapsed(
        self,
        session: AsyncSession,
        grace_start: datetime,
    ) -> list[SubscriptionModel]:
        """
        Revert paid subscriptions whose period ended before the grace window to free.

        Gateway references are kept so a later webhook can reactivate the row.

        Args:
            session: Async database session
            grace_start: Oldest period end still inside the grace window

        Returns:
            Updated rows
        """
        stmt = (
            update(SubscriptionModel)
            .where(
                SubscriptionModel.status.in_(("active", "past_due")),
                SubscriptionModel.plan_id != "free",
                SubscriptionModel.current_period_end < grace_start,
            )
            .values(plan_id="free", status="canceled", updated_at=utcnow())
            .returning(SubscriptionModel)
        )
        result = await session.scalars(
            stmt,
            execution_options={"synchronize_session": False, "populate_existing": True},
        )
        return list(result.all())


subscription_crud = SubscriptionCRUD()
