"""
Subscription ORM model.

One billing record per user, mutated only by the billing service in
response to verified gateway webhooks.

Dependencies: sqlalchemy, fluxo.boundary.db.base
System role: Subscription state persistence
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fluxo.boundary.db.base import Base, UUIDMixin, TimestampMixin


class SubscriptionModel(Base, UUIDMixin, TimestampMixin):
    """
    Subscription ORM model.

    The unique constraint on user_id is what makes the webhook upsert
    atomic (INSERT ... ON CONFLICT (user_id) DO UPDATE). Rows are never
    deleted; gateway-side deletion moves them to plan "free" / status
    "canceled".

    Attributes:
        user_id: Owning user (unique)
        plan_id: "free" or "pro"
        status: Gateway status string stored verbatim
        payment_gateway: Gateway billing the subscription ("stripe" or "kiwify")
        stripe_customer_id: Stripe customer reference
        stripe_subscription_id: Stripe subscription reference (None when canceled)
        kiwify_subscription_id: Kiwify subscription reference (None when canceled)
        current_period_end: End of the paid period (UTC)
    """

    __tablename__ = "subscriptions"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    plan_id: Mapped[str] = mapped_column(String(32), nullable=False, default="free")
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_gateway: Mapped[str] = mapped_column(
        String(32), nullable=False, default="stripe", server_default="stripe"
    )
    stripe_customer_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    kiwify_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user = relationship("UserModel", back_populates="subscription")
