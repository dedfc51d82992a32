"""
Billing domain models and schemas.

Gateway object views (Stripe subscription, customer, checkout session and
invoice; Kiwify order and subscription), the closed set of webhook event
variants acted upon by the billing service, and the request/response
schemas of the billing API.

Dependencies: pydantic
System role: Billing API contracts and webhook event typing
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

USER_ID_METADATA_KEYS = ("userId", "user_id")


class PlanId(str, Enum):
    """Internal plan identifiers."""

    FREE = "free"
    PRO = "pro"


class GatewayName(str, Enum):
    """Payment gateways a subscription can be billed through."""

    STRIPE = "stripe"
    KIWIFY = "kiwify"


class SubscriptionStatus(str, Enum):
    """
    Gateway-defined subscription statuses.

    Statuses are stored verbatim as strings; the enum documents the values
    known at the time of writing and is not used to reject new ones.
    """

    ACTIVE = "active"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    UNPAID = "unpaid"


def extract_user_id(metadata: dict[str, Any] | None) -> str | None:
    """
    Read the internal user ID from gateway metadata.

    Args:
        metadata: Metadata dict attached to a gateway object

    Returns:
        str | None: User ID, or None when the link is missing
    """
    if not metadata:
        return None
    for key in USER_ID_METADATA_KEYS:
        value = metadata.get(key)
        if value:
            return str(value)
    return None


def from_unix_seconds(value: int | None) -> datetime | None:
    """Convert a gateway Unix timestamp (seconds) to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


# --- Gateway objects ----------------------------------------------------------


class GatewayObject(BaseModel):
    """Base for gateway payload views; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")


class GatewayPrice(GatewayObject):
    id: str


class GatewaySubscriptionItem(GatewayObject):
    price: GatewayPrice
    current_period_end: int | None = None


class GatewaySubscriptionItems(GatewayObject):
    data: list[GatewaySubscriptionItem] = Field(default_factory=list)


class GatewaySubscription(GatewayObject):
    """Subscription object as returned by the gateway."""

    id: str
    customer: str
    status: str
    current_period_end: int | None = None
    cancel_at_period_end: bool = False
    items: GatewaySubscriptionItems = Field(default_factory=GatewaySubscriptionItems)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def price_id(self) -> str | None:
        """Price ID of the first subscription item."""
        if not self.items.data:
            return None
        return self.items.data[0].price.id

    @property
    def period_end(self) -> datetime | None:
        """
        End of the current billing period.

        Newer API versions report the period on each item instead of the
        subscription; the first item is used as a fallback.
        """
        seconds = self.current_period_end
        if seconds is None and self.items.data:
            seconds = self.items.data[0].current_period_end
        return from_unix_seconds(seconds)


class GatewayCustomer(GatewayObject):
    id: str
    email: str | None = None
    deleted: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def user_id(self) -> str | None:
        return extract_user_id(self.metadata)


class GatewayCheckoutSession(GatewayObject):
    id: str
    url: str | None = None
    customer: str | None = None
    subscription: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def user_id(self) -> str | None:
        return extract_user_id(self.metadata)


class GatewayInvoice(GatewayObject):
    id: str
    customer: str | None = None
    subscription: str | None = None
    amount_due: int | None = None
    amount_paid: int | None = None
    attempt_count: int | None = None


class GatewayPortalSession(GatewayObject):
    id: str
    url: str


# --- Kiwify objects -----------------------------------------------------------

KIWIFY_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE.value,
    "approved": SubscriptionStatus.ACTIVE.value,
    "canceled": SubscriptionStatus.CANCELED.value,
    "cancelled": SubscriptionStatus.CANCELED.value,
    "late": SubscriptionStatus.PAST_DUE.value,
    "overdue": SubscriptionStatus.PAST_DUE.value,
}


class KiwifyCustomer(GatewayObject):
    email: str | None = None


class KiwifyCustomerMixin(GatewayObject):
    """Kiwify identifies buyers by email, nested or flat depending on the payload."""

    customer: KiwifyCustomer | None = None
    customer_email: str | None = None

    @property
    def email(self) -> str | None:
        if self.customer is not None and self.customer.email:
            return self.customer.email
        return self.customer_email


class KiwifySubscription(KiwifyCustomerMixin):
    """Subscription object as returned by the Kiwify API."""

    id: str
    status: str
    product_id: str | None = None
    current_period_end: datetime | None = None

    @field_validator("current_period_end")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def normalized_status(self) -> str:
        """Status mapped onto the statuses stored for every gateway."""
        return KIWIFY_STATUS_MAP.get(self.status, self.status)


class KiwifyEventType(str, Enum):
    """Kiwify webhook triggers acted upon."""

    PURCHASE_APPROVED = "compra_aprovada"
    PURCHASE_REFUSED = "compra_recusada"
    PURCHASE_REFUNDED = "compra_reembolsada"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    SUBSCRIPTION_LATE = "subscription_late"
    SUBSCRIPTION_CANCELED = "subscription_canceled"


class KiwifyEvent(KiwifyCustomerMixin):
    """
    Verified Kiwify webhook delivery.

    Unlike Stripe events, Kiwify posts the order itself; the subscription
    (when there is one) is referenced by ID and fetched separately.
    """

    id: str
    type: str
    order_id: str | None = None
    subscription_id: str | None = None
    product_id: str | None = None


# --- Webhook events -----------------------------------------------------------


class WebhookEventBase(BaseModel):
    """Common envelope fields of a verified webhook event."""

    id: str
    type: str


class CheckoutSessionCompletedEvent(WebhookEventBase):
    type: Literal["checkout.session.completed"]
    data: GatewayCheckoutSession


class SubscriptionChangedEvent(WebhookEventBase):
    type: Literal["customer.subscription.created", "customer.subscription.updated"]
    data: GatewaySubscription


class SubscriptionDeletedEvent(WebhookEventBase):
    type: Literal["customer.subscription.deleted"]
    data: GatewaySubscription


class InvoicePaymentSucceededEvent(WebhookEventBase):
    type: Literal["invoice.payment_succeeded"]
    data: GatewayInvoice


class InvoicePaymentFailedEvent(WebhookEventBase):
    type: Literal["invoice.payment_failed"]
    data: GatewayInvoice


class UnhandledEvent(WebhookEventBase):
    """Any event type outside the handled set; kept for logging only."""

    data: dict[str, Any] = Field(default_factory=dict)


WebhookEvent = Union[
    CheckoutSessionCompletedEvent,
    SubscriptionChangedEvent,
    SubscriptionDeletedEvent,
    InvoicePaymentSucceededEvent,
    InvoicePaymentFailedEvent,
    UnhandledEvent,
]

_EVENT_MODELS: dict[str, type[WebhookEventBase]] = {
    "checkout.session.completed": CheckoutSessionCompletedEvent,
    "customer.subscription.created": SubscriptionChangedEvent,
    "customer.subscription.updated": SubscriptionChangedEvent,
    "customer.subscription.deleted": SubscriptionDeletedEvent,
    "invoice.payment_succeeded": InvoicePaymentSucceededEvent,
    "invoice.payment_failed": InvoicePaymentFailedEvent,
}

HANDLED_EVENT_TYPES = frozenset(_EVENT_MODELS)


def parse_webhook_event(payload: dict[str, Any]) -> WebhookEvent:
    """
    Parse a verified gateway event into its typed variant.

    Args:
        payload: Event dict ({"id", "type", "data": {"object": {...}}})

    Returns:
        WebhookEvent: Typed event; UnhandledEvent for types outside the handled set

    Raises:
        pydantic.ValidationError: If a handled event carries a malformed object
    """
    event_type = payload.get("type", "")
    model = _EVENT_MODELS.get(event_type, UnhandledEvent)
    data = (payload.get("data") or {}).get("object") or {}
    return model.model_validate(
        {"id": payload.get("id", ""), "type": event_type, "data": data}
    )


# --- API schemas --------------------------------------------------------------


class CreateCheckoutSessionRequest(BaseModel):
    """Request schema for starting a subscription checkout."""

    price_id: str = Field(..., min_length=1, alias="priceId")
    success_url: str = Field(..., min_length=1, alias="successUrl")
    cancel_url: str = Field(..., min_length=1, alias="cancelUrl")
    gateway: GatewayName = GatewayName.STRIPE

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: str | None


class PortalSessionResponse(BaseModel):
    url: str


class SubscriptionResponse(BaseModel):
    """Response schema for the stored subscription of a user."""

    id: str
    user_id: str
    plan_id: str
    status: str
    payment_gateway: str
    stripe_customer_id: str | None
    stripe_subscription_id: str | None
    kiwify_subscription_id: str | None
    current_period_end: datetime | None
    created_at: datetime
    updated_at: datetime


class CancelSubscriptionResponse(BaseModel):
    message: str


class WebhookAckResponse(BaseModel):
    received: bool = True
    duplicate: bool = False


class ExpirationReport(BaseModel):
    """Counts of subscriptions moved by one expiration sweep."""

    past_due: int = 0
    expired: int = 0
