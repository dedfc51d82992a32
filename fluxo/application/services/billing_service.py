"""
Billing service orchestrator.

Reconciles Stripe and Kiwify webhook events onto the local subscription
record, wraps the gateway calls behind checkout, customer portal,
subscription status and cancel operations, and downgrades subscriptions
whose billing period lapsed without a renewal.

Dependencies: fluxo.boundary.db.CRUD, fluxo.boundary.payments, fluxo.models.billing
System role: Subscription billing use case orchestration
"""

import logging
from datetime import datetime, timedelta
from typing import Any, assert_never
from uuid import UUID, uuid4

import pydantic
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.application.services.plan_resolver import PricePlanResolver
from fluxo.boundary.db.base import utcnow
from fluxo.boundary.db.CRUD.subscription_crud import subscription_crud
from fluxo.boundary.db.CRUD.user_crud import user_crud
from fluxo.boundary.db.CRUD.webhook_event_crud import webhook_event_crud
from fluxo.boundary.db.models.subscription_model import SubscriptionModel
from fluxo.boundary.db.models.user_model import UserModel
from fluxo.boundary.payments.gateway import PaymentGateway
from fluxo.boundary.payments.kiwify_gateway import KiwifyGateway
from fluxo.core.exceptions import (
    InvalidSignatureError,
    NotFoundError,
    SubscriptionError,
    ValidationError,
)
from fluxo.core.locks import KeyedLock
from fluxo.models.billing import (
    CheckoutSessionCompletedEvent,
    GatewayName,
    GatewaySubscription,
    InvoicePaymentFailedEvent,
    InvoicePaymentSucceededEvent,
    KiwifyEvent,
    KiwifyEventType,
    KiwifySubscription,
    PlanId,
    SubscriptionChangedEvent,
    SubscriptionDeletedEvent,
    SubscriptionStatus,
    UnhandledEvent,
    WebhookEvent,
    extract_user_id,
    parse_webhook_event,
)

logger = logging.getLogger(__name__)

_KIWIFY_SUBSCRIPTION_EVENTS = frozenset(
    {
        KiwifyEventType.PURCHASE_APPROVED.value,
        KiwifyEventType.SUBSCRIPTION_RENEWED.value,
        KiwifyEventType.SUBSCRIPTION_LATE.value,
    }
)
_KIWIFY_FAILED_PAYMENT_EVENTS = frozenset(
    {
        KiwifyEventType.PURCHASE_REFUSED.value,
        KiwifyEventType.PURCHASE_REFUNDED.value,
    }
)


class BillingService:
    """
    Billing service orchestrator.

    Plan and status are written only by webhook handling and by the
    expiration sweep. Each delivery is applied in a single transaction
    together with its event ID, so a failed delivery leaves no partial
    state and a redelivered one is acknowledged without being applied twice.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        plan_resolver: PricePlanResolver,
        user_locks: KeyedLock | None = None,
        kiwify_gateway: KiwifyGateway | None = None,
    ) -> None:
        """
        Initialize billing service.

        Args:
            db: Async SQLAlchemy session
            gateway: Stripe gateway client
            plan_resolver: Price ID -> plan ID resolver
            user_locks: Per-user locks shared across requests (a private
                registry is created when omitted)
            kiwify_gateway: Kiwify client, None when that gateway is disabled
        """
        self.db = db
        self.gateway = gateway
        self.plan_resolver = plan_resolver
        self.user_locks = user_locks if user_locks is not None else KeyedLock()
        self.kiwify_gateway = kiwify_gateway

    # --- Webhooks -------------------------------------------------------------

    async def handle_webhook(
        self,
        raw_body: bytes,
        signature: str,
        gateway: str = GatewayName.STRIPE.value,
    ) -> dict[str, Any]:
        """
        Verify, deduplicate and apply one webhook delivery.

        Args:
            raw_body: Request body exactly as received
            signature: Stripe-Signature header, or the Kiwify webhook token header
            gateway: Name of the gateway that sent the delivery

        Returns:
            dict: {"received": True}, plus "duplicate": True for an event
                ID that was already applied

        Raises:
            ValidationError: If the gateway is unknown or disabled, or a
                checkout event lacks a usable user ID
            InvalidSignatureError: If verification fails (nothing is applied)
            PaymentGatewayError: If a gateway lookup fails
        """
        gateway_name = self._resolve_gateway_name(gateway)
        if gateway_name is GatewayName.KIWIFY:
            payload = self._require_kiwify().construct_event(raw_body, signature)
        else:
            payload = self.gateway.construct_event(raw_body, signature)

        event_id = payload.get("id")
        event_type = payload.get("type")
        if not event_id or not event_type:
            raise InvalidSignatureError("Webhook event is missing id or type")

        # Stripe IDs are globally unique; other gateways get a namespace
        if gateway_name is not GatewayName.STRIPE:
            event_id = f"{gateway_name.value}:{event_id}"

        if await webhook_event_crud.is_processed(self.db, event_id):
            logger.info(
                "Duplicate webhook event ignored",
                extra={"event_id": event_id, "event_type": event_type},
            )
            return {"received": True, "duplicate": True}

        try:
            if gateway_name is GatewayName.KIWIFY:
                event = KiwifyEvent.model_validate({**payload, "id": event_id})
            else:
                event = parse_webhook_event(payload)
        except pydantic.ValidationError as e:
            raise ValidationError(
                "Malformed webhook event object",
                details={"event_id": event_id, "event_type": event_type, "error": str(e)},
            ) from e

        try:
            await self._dispatch(event)
            await webhook_event_crud.record(self.db, event.id, event.type)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Webhook event processed",
            extra={
                "event_id": event.id,
                "event_type": event.type,
                "gateway": gateway_name.value,
            },
        )
        return {"received": True}

    def _resolve_gateway_name(self, gateway: str) -> GatewayName:
        try:
            return GatewayName(gateway)
        except ValueError as e:
            raise ValidationError(
                f"Unsupported payment gateway '{gateway}'",
                field="gateway",
                details={"supported": [name.value for name in GatewayName]},
            ) from e

    def _require_kiwify(self) -> KiwifyGateway:
        if self.kiwify_gateway is None:
            raise ValidationError(
                "Payment gateway 'kiwify' is not enabled", field="gateway"
            )
        return self.kiwify_gateway

    async def _dispatch(self, event: WebhookEvent | KiwifyEvent) -> None:
        if isinstance(event, KiwifyEvent):
            await self._handle_kiwify_event(event)
        elif isinstance(event, CheckoutSessionCompletedEvent):
            await self._handle_checkout_completed(event)
        elif isinstance(event, SubscriptionChangedEvent):
            await self._handle_subscription_changed(event)
        elif isinstance(event, SubscriptionDeletedEvent):
            await self._handle_subscription_deleted(event)
        elif isinstance(event, InvoicePaymentSucceededEvent):
            logger.info(
                "Invoice payment succeeded",
                extra={
                    "event_id": event.id,
                    "invoice_id": event.data.id,
                    "customer_id": event.data.customer,
                    "amount_paid": event.data.amount_paid,
                },
            )
        elif isinstance(event, InvoicePaymentFailedEvent):
            # Dunning is left to the gateway; the subscription.updated event
            # carries any resulting status change.
            logger.warning(
                "Invoice payment failed",
                extra={
                    "event_id": event.id,
                    "invoice_id": event.data.id,
                    "customer_id": event.data.customer,
                    "attempt_count": event.data.attempt_count,
                },
            )
        elif isinstance(event, UnhandledEvent):
            logger.info(
                "Unhandled webhook event type",
                extra={"event_id": event.id, "event_type": event.type},
            )
        else:
            assert_never(event)

    async def _handle_checkout_completed(self, event: CheckoutSessionCompletedEvent) -> None:
        session = event.data
        if session.user_id is None:
            raise ValidationError(
                "Checkout session metadata has no userId",
                field="metadata.userId",
                details={"event_id": event.id, "session_id": session.id},
            )
        user_id = _parse_user_id(session.user_id)

        if not session.subscription:
            raise ValidationError(
                "Checkout session has no subscription",
                field="subscription",
                details={"event_id": event.id, "session_id": session.id},
            )

        subscription = await self.gateway.retrieve_subscription(session.subscription)
        await self._upsert_subscription(user_id, subscription)

    async def _handle_subscription_changed(self, event: SubscriptionChangedEvent) -> None:
        user_id = await self._resolve_user_id(event.data)
        if user_id is None:
            logger.warning(
                "No userId linked to subscription, skipping update",
                extra={
                    "event_id": event.id,
                    "subscription_id": event.data.id,
                    "customer_id": event.data.customer,
                },
            )
            return
        await self._upsert_subscription(user_id, event.data)

    async def _handle_subscription_deleted(self, event: SubscriptionDeletedEvent) -> None:
        user_id = await self._resolve_user_id(event.data)
        if user_id is None:
            logger.warning(
                "No userId linked to subscription, skipping deletion",
                extra={
                    "event_id": event.id,
                    "subscription_id": event.data.id,
                    "customer_id": event.data.customer,
                },
            )
            return

        async with self.user_locks.hold(user_id):
            record = await subscription_crud.update_for_user(
                self.db,
                user_id,
                plan_id=PlanId.FREE.value,
                status=SubscriptionStatus.CANCELED.value,
                stripe_subscription_id=None,
                current_period_end=None,
            )

        if record is None:
            logger.warning(
                "Subscription deleted for user without a local subscription",
                extra={"user_id": str(user_id), "subscription_id": event.data.id},
            )
            return
        logger.info(
            "Subscription canceled",
            extra={"user_id": str(user_id), "subscription_id": event.data.id},
        )

    async def _resolve_user_id(self, subscription: GatewaySubscription) -> UUID | None:
        """
        Find the internal user linked to a gateway subscription.

        The customer's metadata is authoritative; the subscription's own
        metadata (set at checkout) is used when the customer carries none.
        A link that is not a UUID is treated like a missing one.
        """
        customer = await self.gateway.retrieve_customer(subscription.customer)
        raw_user_id = customer.user_id or extract_user_id(subscription.metadata)
        if raw_user_id is None:
            return None
        try:
            return UUID(raw_user_id)
        except ValueError:
            logger.warning(
                "Ignoring malformed userId in gateway metadata",
                extra={"subscription_id": subscription.id, "user_id": raw_user_id},
            )
            return None

    async def _upsert_subscription(
        self,
        user_id: UUID,
        subscription: GatewaySubscription,
    ) -> SubscriptionModel:
        plan_id = self.plan_resolver.resolve(subscription.price_id)

        async with self.user_locks.hold(user_id):
            record = await subscription_crud.upsert_for_user(
                self.db,
                user_id,
                plan_id=plan_id,
                status=subscription.status,
                payment_gateway=GatewayName.STRIPE.value,
                stripe_customer_id=subscription.customer,
                stripe_subscription_id=subscription.id,
                kiwify_subscription_id=None,
                current_period_end=subscription.period_end,
            )

        logger.info(
            "Subscription upserted",
            extra={
                "user_id": str(user_id),
                "subscription_id": subscription.id,
                "plan_id": plan_id,
                "status": subscription.status,
            },
        )
        return record

    async def _handle_kiwify_event(self, event: KiwifyEvent) -> None:
        if event.type == KiwifyEventType.SUBSCRIPTION_CANCELED.value:
            await self._handle_kiwify_canceled(event)
        elif event.type in _KIWIFY_SUBSCRIPTION_EVENTS:
            if not event.subscription_id:
                logger.info(
                    "Kiwify purchase without subscription ignored",
                    extra={"event_id": event.id, "order_id": event.order_id},
                )
                return
            subscription = await self._require_kiwify().retrieve_subscription(
                event.subscription_id
            )
            user = await self._resolve_kiwify_user(event, subscription)
            if user is None:
                return
            await self._upsert_kiwify_subscription(user.id, subscription)
        elif event.type in _KIWIFY_FAILED_PAYMENT_EVENTS:
            logger.warning(
                "Kiwify payment not completed",
                extra={
                    "event_id": event.id,
                    "event_type": event.type,
                    "order_id": event.order_id,
                    "subscription_id": event.subscription_id,
                },
            )
        else:
            logger.info(
                "Unhandled webhook event type",
                extra={"event_id": event.id, "event_type": event.type},
            )

    async def _handle_kiwify_canceled(self, event: KiwifyEvent) -> None:
        user = await self._resolve_kiwify_user(event)
        if user is None:
            return

        async with self.user_locks.hold(user.id):
            current = await subscription_crud.get_by_user_id(self.db, user.id, refresh=True)
            if (
                current is None
                or current.payment_gateway != GatewayName.KIWIFY.value
                or current.kiwify_subscription_id != event.subscription_id
            ):
                logger.warning(
                    "Kiwify cancellation does not match the stored subscription",
                    extra={"user_id": str(user.id), "subscription_id": event.subscription_id},
                )
                return
            await subscription_crud.update_for_user(
                self.db,
                user.id,
                plan_id=PlanId.FREE.value,
                status=SubscriptionStatus.CANCELED.value,
                kiwify_subscription_id=None,
                current_period_end=None,
            )

        logger.info(
            "Subscription canceled",
            extra={"user_id": str(user.id), "subscription_id": event.subscription_id},
        )

    async def _resolve_kiwify_user(
        self,
        event: KiwifyEvent,
        subscription: KiwifySubscription | None = None,
    ) -> UserModel | None:
        """Kiwify identifies buyers by email only; unknown buyers are skipped."""
        email = event.email or (subscription.email if subscription is not None else None)
        user = await user_crud.get_by_email(self.db, email) if email else None
        if user is None:
            logger.warning(
                "No user matches Kiwify buyer, skipping event",
                extra={"event_id": event.id, "event_type": event.type, "email": email},
            )
        return user

    async def _upsert_kiwify_subscription(
        self,
        user_id: UUID,
        subscription: KiwifySubscription,
    ) -> SubscriptionModel:
        plan_id = self._require_kiwify().plan_for_product(subscription.product_id)
        status = subscription.normalized_status

        async with self.user_locks.hold(user_id):
            record = await subscription_crud.upsert_for_user(
                self.db,
                user_id,
                plan_id=plan_id,
                status=status,
                payment_gateway=GatewayName.KIWIFY.value,
                stripe_subscription_id=None,
                kiwify_subscription_id=subscription.id,
                current_period_end=subscription.current_period_end,
            )

        logger.info(
            "Subscription upserted",
            extra={
                "user_id": str(user_id),
                "subscription_id": subscription.id,
                "plan_id": plan_id,
                "status": status,
                "gateway": GatewayName.KIWIFY.value,
            },
        )
        return record

    # --- Checkout and self-service ---------------------------------------------

    async def create_checkout_session(
        self,
        user_id: UUID,
        price_id: str,
        success_url: str,
        cancel_url: str,
        gateway: str = GatewayName.STRIPE.value,
    ) -> dict[str, Any]:
        """
        Start a subscription checkout for a user.

        Args:
            user_id: User UUID
            price_id: Stripe price, or Kiwify product, to subscribe to
            success_url: Redirect after payment (Stripe only)
            cancel_url: Redirect when the user backs out (Stripe only)
            gateway: Gateway to check out with

        Returns:
            dict: {"session_id", "url"}

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: If the gateway is unknown or disabled
            SubscriptionError: If the user already has an active paid subscription
            PaymentGatewayError: If a gateway call fails
        """
        gateway_name = self._resolve_gateway_name(gateway)
        user = await user_crud.get_by_id(self.db, user_id)
        if user is None:
            raise NotFoundError("User not found", resource="user", resource_id=user_id)

        subscription = await subscription_crud.get_by_user_id(self.db, user_id)
        if (
            subscription is not None
            and subscription.status == SubscriptionStatus.ACTIVE.value
            and subscription.plan_id != PlanId.FREE.value
        ):
            raise SubscriptionError(
                "User already has an active subscription",
                user_id=str(user_id),
                details={"plan_id": subscription.plan_id},
            )

        if gateway_name is GatewayName.KIWIFY:
            url = self._require_kiwify().checkout_url(price_id, user.email, str(user_id))
            session_id = f"kiwify_{uuid4().hex}"
            logger.info(
                "Checkout session created",
                extra={
                    "user_id": str(user_id),
                    "session_id": session_id,
                    "product_id": price_id,
                },
            )
            return {"session_id": session_id, "url": url}

        customer_id = await self._get_or_create_customer(user)
        session = await self.gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            user_id=str(user_id),
        )

        logger.info(
            "Checkout session created",
            extra={"user_id": str(user_id), "session_id": session.id, "price_id": price_id},
        )
        return {"session_id": session.id, "url": session.url}

    async def _get_or_create_customer(self, user: UserModel) -> str:
        """
        Return the user's gateway customer ID, creating it once if missing.

        Runs under the user's lock and commits before releasing it, so
        concurrent checkouts for one user see the stored customer instead
        of creating a second one.
        """
        async with self.user_locks.hold(user.id):
            subscription = await subscription_crud.get_by_user_id(
                self.db, user.id, refresh=True
            )
            if subscription is not None and subscription.stripe_customer_id:
                return subscription.stripe_customer_id

            customer = await self.gateway.create_customer(
                email=user.email, user_id=str(user.id)
            )
            if subscription is None:
                await subscription_crud.upsert_for_user(
                    self.db,
                    user.id,
                    plan_id=PlanId.FREE.value,
                    status=SubscriptionStatus.INCOMPLETE.value,
                    stripe_customer_id=customer.id,
                )
            else:
                await subscription_crud.update_for_user(
                    self.db, user.id, stripe_customer_id=customer.id
                )
            await self.db.commit()

        return customer.id

    async def create_customer_portal_session(
        self,
        user_id: UUID,
        return_url: str,
    ) -> dict[str, str]:
        """
        Open a customer portal session for a user.

        Args:
            user_id: User UUID
            return_url: Where the portal sends the user back to

        Returns:
            dict: {"url"}

        Raises:
            NotFoundError: If the user has no gateway customer
        """
        subscription = await subscription_crud.get_by_user_id(self.db, user_id)
        if subscription is None or not subscription.stripe_customer_id:
            raise NotFoundError(
                "No billing customer found for user",
                resource="customer",
                resource_id=user_id,
            )

        portal = await self.gateway.create_portal_session(
            subscription.stripe_customer_id, return_url
        )
        return {"url": portal.url}

    async def get_subscription_status(self, user_id: UUID) -> dict[str, Any]:
        """
        Get the stored subscription of a user.

        Args:
            user_id: User UUID

        Returns:
            dict: Subscription fields and timestamps

        Raises:
            NotFoundError: If the user has no subscription record
        """
        subscription = await subscription_crud.get_by_user_id(self.db, user_id)
        if subscription is None:
            raise NotFoundError(
                "Subscription not found", resource="subscription", resource_id=user_id
            )

        return {
            "id": str(subscription.id),
            "user_id": str(subscription.user_id),
            "plan_id": subscription.plan_id,
            "status": subscription.status,
            "payment_gateway": subscription.payment_gateway,
            "stripe_customer_id": subscription.stripe_customer_id,
            "stripe_subscription_id": subscription.stripe_subscription_id,
            "kiwify_subscription_id": subscription.kiwify_subscription_id,
            "current_period_end": subscription.current_period_end,
            "created_at": subscription.created_at,
            "updated_at": subscription.updated_at,
        }

    async def cancel_subscription(self, user_id: UUID) -> dict[str, str]:
        """
        Cancel the user's subscription with the gateway that bills it.

        Stripe subscriptions are scheduled to cancel at period end; Kiwify
        cancels immediately. Local state is left as is in both cases: the
        resulting webhook records the change.

        Args:
            user_id: User UUID

        Returns:
            dict: {"message"}

        Raises:
            NotFoundError: If the user has no gateway subscription
            ValidationError: If the subscription is billed by a disabled gateway
            PaymentGatewayError: If the gateway call fails
        """
        subscription = await subscription_crud.get_by_user_id(self.db, user_id)
        billed_by_kiwify = (
            subscription is not None
            and subscription.payment_gateway == GatewayName.KIWIFY.value
        )
        if subscription is None:
            gateway_subscription_id = None
        elif billed_by_kiwify:
            gateway_subscription_id = subscription.kiwify_subscription_id
        else:
            gateway_subscription_id = subscription.stripe_subscription_id
        if not gateway_subscription_id:
            raise NotFoundError(
                "No active subscription found",
                resource="subscription",
                resource_id=user_id,
            )

        if billed_by_kiwify:
            await self._require_kiwify().cancel_subscription(gateway_subscription_id)
            logger.info(
                "Subscription canceled with gateway",
                extra={"user_id": str(user_id), "subscription_id": gateway_subscription_id},
            )
            return {"message": "Subscription has been canceled"}

        await self.gateway.cancel_at_period_end(gateway_subscription_id)
        logger.info(
            "Subscription set to cancel at period end",
            extra={
                "user_id": str(user_id),
                "subscription_id": gateway_subscription_id,
            },
        )
        return {"message": "Subscription will be canceled at the end of the billing period"}

    # --- Expiration -------------------------------------------------------------

    async def check_expired_subscriptions(
        self,
        now: datetime | None = None,
        grace_period_days: int = 3,
    ) -> dict[str, int]:
        """
        Downgrade paid subscriptions whose billing period has lapsed.

        Covers renewals that never produced a webhook. An active paid
        subscription whose period ended less than the grace period ago is
        marked past_due; one that ended longer ago (active or past_due) is
        reverted to plan "free" with status "canceled". Rows without a
        period end are never touched. A later renewal webhook overwrites
        both transitions.

        Args:
            now: Reference time (defaults to the current UTC time)
            grace_period_days: Days a lapsed subscription keeps its plan

        Returns:
            dict: {"past_due": count, "expired": count}
        """
        now = now or utcnow()
        grace_start = now - timedelta(days=grace_period_days)

        try:
            expired = await subscription_crud.expire_lapsed(self.db, grace_start)
            past_due = await subscription_crud.mark_past_due(self.db, now, grace_start)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        for record in expired:
            logger.info(
                "Subscription expired, reverted to free plan",
                extra={"user_id": str(record.user_id), "gateway": record.payment_gateway},
            )
        for record in past_due:
            logger.info(
                "Subscription lapsed, marked past_due",
                extra={"user_id": str(record.user_id), "gateway": record.payment_gateway},
            )
        logger.info(
            "Expiration check completed",
            extra={"past_due": len(past_due), "expired": len(expired)},
        )
        return {"past_due": len(past_due), "expired": len(expired)}


def _parse_user_id(raw_user_id: str) -> UUID:
    try:
        return UUID(raw_user_id)
    except ValueError as e:
        raise ValidationError(
            f"Invalid userId '{raw_user_id}' in gateway metadata",
            field="metadata.userId",
        ) from e
