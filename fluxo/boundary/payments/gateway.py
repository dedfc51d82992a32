"""
Payment gateway protocol.

The billing service depends on this interface rather than on the Stripe
SDK, so tests can substitute an AsyncMock and the gateway stays swappable.

Dependencies: fluxo.models.billing
System role: Payment gateway abstraction
"""

from typing import Any, Protocol

from fluxo.models.billing import (
    GatewayCheckoutSession,
    GatewayCustomer,
    GatewayPortalSession,
    GatewaySubscription,
)


class PaymentGateway(Protocol):
    """Operations the billing service needs from the payment provider."""

    def construct_event(self, raw_body: bytes, signature: str) -> dict[str, Any]:
        """
        Verify a webhook delivery and return the event payload.

        Raises:
            InvalidSignatureError: If the signature or payload is invalid
        """
        ...

    async def retrieve_subscription(self, subscription_id: str) -> GatewaySubscription: ...

    async def retrieve_customer(self, customer_id: str) -> GatewayCustomer: ...

    async def create_customer(self, email: str, user_id: str) -> GatewayCustomer: ...

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        user_id: str,
    ) -> GatewayCheckoutSession: ...

    async def create_portal_session(
        self, customer_id: str, return_url: str
    ) -> GatewayPortalSession: ...

    async def cancel_at_period_end(self, subscription_id: str) -> GatewaySubscription: ...
