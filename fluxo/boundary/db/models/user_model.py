"""
User ORM model.

Minimal account record referenced by subscriptions. Authentication
columns live with the auth service and are not mapped here.

Dependencies: sqlalchemy, fluxo.boundary.db.base
System role: Account persistence for billing
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fluxo.boundary.db.base import Base, UUIDMixin, TimestampMixin


class UserModel(Base, UUIDMixin, TimestampMixin):
    """
    User ORM model.

    Attributes:
        id: UUID primary key
        email: Unique login email, also sent to the gateway on customer creation
        role: "user" or "admin"
        is_active: Soft-disable flag
        subscription: One-to-one SubscriptionModel (cascade delete)
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    subscription = relationship(
        "SubscriptionModel",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
