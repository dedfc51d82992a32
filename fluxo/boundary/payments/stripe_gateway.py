"""
Stripe payment gateway.

Wraps the stripe SDK behind the PaymentGateway protocol: verifies webhook
signatures, and creates/retrieves customers, subscriptions, checkout and
portal sessions. Every SDK object is normalised to a plain dict and parsed
into the gateway views of fluxo.models.billing.

Dependencies: stripe, httpx, fluxo.configs, fluxo.models.billing
System role: Stripe API client for subscription billing
"""

import logging
from typing import Any

import stripe

from fluxo.configs.billing import BillingSettings
from fluxo.core.exceptions import InvalidSignatureError, PaymentGatewayError
from fluxo.models.billing import (
    GatewayCheckoutSession,
    GatewayCustomer,
    GatewayPortalSession,
    GatewaySubscription,
)

logger = logging.getLogger(__name__)


def _to_dict(obj: Any) -> dict[str, Any]:
    """Normalise a StripeObject (or plain mapping) to a dict."""
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    return dict(obj)


class StripeGateway:
    """
    PaymentGateway implementation backed by the Stripe API.

    Requests go through the async HTTPX client with a bounded timeout and
    the SDK's automatic retry on network failures.

    Attributes:
        webhook_secret: Signing secret of the webhook endpoint
    """

    def __init__(self, settings: BillingSettings) -> None:
        """
        Initialize the Stripe client.

        Args:
            settings: Billing settings with API key, webhook secret and limits
        """
        self.webhook_secret = settings.webhook_secret
        self._client = stripe.StripeClient(
            settings.secret_key,
            http_client=stripe.HTTPXClient(timeout=settings.request_timeout),
            max_network_retries=settings.max_network_retries,
        )

    def construct_event(self, raw_body: bytes, signature: str) -> dict[str, Any]:
        """
        Verify the Stripe-Signature header and decode the event.

        Args:
            raw_body: Request body exactly as received
            signature: Stripe-Signature header value

        Returns:
            dict: Event payload ({"id", "type", "data": {"object": ...}})

        Raises:
            InvalidSignatureError: If the payload is malformed or the signature does not match
        """
        try:
            event = stripe.Webhook.construct_event(
                raw_body, signature, self.webhook_secret
            )
        except ValueError as e:
            raise InvalidSignatureError(
                "Invalid webhook payload", details={"error": str(e)}
            ) from e
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(
                "Invalid webhook signature", details={"error": str(e)}
            ) from e
        return _to_dict(event)

    async def retrieve_subscription(self, subscription_id: str) -> GatewaySubscription:
        """
        Fetch the live subscription object.

        Args:
            subscription_id: Stripe subscription ID (sub_...)

        Returns:
            GatewaySubscription: Parsed subscription

        Raises:
            PaymentGatewayError: If the Stripe call fails
        """
        try:
            subscription = await self._client.subscriptions.retrieve_async(subscription_id)
        except stripe.StripeError as e:
            raise self._gateway_error("retrieve_subscription", e) from e
        return GatewaySubscription.model_validate(_to_dict(subscription))

    async def retrieve_customer(self, customer_id: str) -> GatewayCustomer:
        """
        Fetch a customer, used to resolve the internal user from its metadata.

        Args:
            customer_id: Stripe customer ID (cus_...)

        Returns:
            GatewayCustomer: Parsed customer (deleted customers carry deleted=True)

        Raises:
            PaymentGatewayError: If the Stripe call fails
        """
        try:
            customer = await self._client.customers.retrieve_async(customer_id)
        except stripe.StripeError as e:
            raise self._gateway_error("retrieve_customer", e) from e
        return GatewayCustomer.model_validate(_to_dict(customer))

    async def create_customer(self, email: str, user_id: str) -> GatewayCustomer:
        """
        Create a customer linked to an internal user via metadata.userId.

        Args:
            email: User email
            user_id: Internal user ID

        Returns:
            GatewayCustomer: Created customer

        Raises:
            PaymentGatewayError: If the Stripe call fails
        """
        try:
            customer = await self._client.customers.create_async(
                params={"email": email, "metadata": {"userId": user_id}}
            )
        except stripe.StripeError as e:
            raise self._gateway_error("create_customer", e) from e
        created = GatewayCustomer.model_validate(_to_dict(customer))
        logger.info(
            "Stripe customer created",
            extra={"customer_id": created.id, "user_id": user_id},
        )
        return created

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        user_id: str,
    ) -> GatewayCheckoutSession:
        """
        Create a subscription-mode Checkout Session.

        Args:
            customer_id: Stripe customer ID
            price_id: Price to subscribe to
            success_url: Redirect after payment
            cancel_url: Redirect when the user backs out
            user_id: Internal user ID stored in session metadata

        Returns:
            GatewayCheckoutSession: Created session with hosted URL

        Raises:
            PaymentGatewayError: If the Stripe call fails
        """
        try:
            session = await self._client.checkout.sessions.create_async(
                params={
                    "customer": customer_id,
                    "mode": "subscription",
                    "line_items": [{"price": price_id, "quantity": 1}],
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": {"userId": user_id},
                    "subscription_data": {"metadata": {"userId": user_id}},
                }
            )
        except stripe.StripeError as e:
            raise self._gateway_error("create_checkout_session", e) from e
        return GatewayCheckoutSession.model_validate(_to_dict(session))

    async def create_portal_session(
        self, customer_id: str, return_url: str
    ) -> GatewayPortalSession:
        """
        Create a customer portal session.

        Args:
            customer_id: Stripe customer ID
            return_url: Where the portal sends the user back to

        Returns:
            GatewayPortalSession: Session with portal URL

        Raises:
            PaymentGatewayError: If the Stripe call fails
        """
        try:
            session = await self._client.billing_portal.sessions.create_async(
                params={"customer": customer_id, "return_url": return_url}
            )
        except stripe.StripeError as e:
            raise self._gateway_error("create_portal_session", e) from e
        return GatewayPortalSession.model_validate(_to_dict(session))

    async def cancel_at_period_end(self, subscription_id: str) -> GatewaySubscription:
        """
        Schedule a subscription to cancel at the end of the current period.

        Args:
            subscription_id: Stripe subscription ID

        Returns:
            GatewaySubscription: Updated subscription

        Raises:
            PaymentGatewayError: If the Stripe call fails
        """
        try:
            subscription = await self._client.subscriptions.update_async(
                subscription_id, params={"cancel_at_period_end": True}
            )
        except stripe.StripeError as e:
            raise self._gateway_error("cancel_at_period_end", e) from e
        return GatewaySubscription.model_validate(_to_dict(subscription))

    @staticmethod
    def _gateway_error(operation: str, error: stripe.StripeError) -> PaymentGatewayError:
        logger.error(
            "Stripe request failed",
            extra={
                "operation": operation,
                "error": str(error),
                "http_status": error.http_status,
                "request_id": error.request_id,
            },
        )
        return PaymentGatewayError(
            f"Payment gateway request failed: {operation}",
            operation=operation,
            details={"error": error.user_message or str(error)},
        )
