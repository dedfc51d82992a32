"""
User CRUD operations.

Dependencies: sqlalchemy, fluxo.boundary.db.models
System role: Account lookups for billing
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.boundary.db.CRUD.base_crud import BaseCRUD
from fluxo.boundary.db.models.user_model import UserModel


class UserCRUD(BaseCRUD[UserModel]):
    """CRUD operations for UserModel."""

    def __init__(self) -> None:
        """Initialize UserCRUD with UserModel."""
        super().__init__(UserModel)

    async def get_by_email(self, session: AsyncSession, email: str) -> UserModel | None:
        """
        Retrieve a user by email, ignoring case.

        Args:
            session: Async database session
            email: Email as reported by the gateway

        Returns:
            UserModel if found, None otherwise
        """
        result = await session.execute(
            select(UserModel).where(func.lower(UserModel.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()


user_crud = UserCRUD()
