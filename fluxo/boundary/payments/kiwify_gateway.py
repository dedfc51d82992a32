"""
Kiwify payment gateway.

Verifies Kiwify webhook deliveries against the shared webhook token and
talks to the Kiwify public API over HTTPX for subscription lookups and
cancellation. Kiwify has no checkout session API: checkout is a hosted
product URL carrying the buyer's email and user ID.

Dependencies: httpx, pydantic, fluxo.configs, fluxo.models.billing
System role: Kiwify API client for subscription billing
"""

import hmac
import json
import logging
from typing import Any
from urllib.parse import urlencode

import httpx
import pydantic

from fluxo.configs.kiwify import KiwifySettings
from fluxo.core.exceptions import InvalidSignatureError, PaymentGatewayError
from fluxo.models.billing import KiwifySubscription, PlanId

logger = logging.getLogger(__name__)


class KiwifyGateway:
    """
    Client for the Kiwify public API and webhook verification.

    Attributes:
        webhook_token: Token every webhook delivery must carry
        pro_product_id: Product sold as the pro plan
    """

    def __init__(
        self,
        settings: KiwifySettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the Kiwify client.

        Args:
            settings: Kiwify settings with credentials and product mapping
            http_client: Shared client (a short-lived one is opened per call when omitted)
        """
        self.webhook_token = settings.webhook_token
        self.pro_product_id = settings.pro_product_id
        self.checkout_base_url = settings.checkout_base_url.rstrip("/")
        self._base_url = settings.base_url.rstrip("/")
        self._timeout = settings.request_timeout
        self._headers = {
            "Authorization": f"Bearer {settings.api_token}",
            "x-kiwify-account-id": settings.account_id,
        }
        self._http_client = http_client

    def construct_event(self, raw_body: bytes, signature: str) -> dict[str, Any]:
        """
        Check the webhook token and decode the delivery.

        The token is read from the x-kiwify-webhook-token header, or from the
        body's "token" field when the header is absent.

        Args:
            raw_body: Request body exactly as received
            signature: x-kiwify-webhook-token header value ("" when absent)

        Returns:
            dict: Delivery payload with "id" (falling back to the order ID) and "type"

        Raises:
            InvalidSignatureError: If the body is not a JSON object or the token does not match
        """
        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            raise InvalidSignatureError("Invalid Kiwify webhook payload") from e
        if not isinstance(payload, dict):
            raise InvalidSignatureError("Invalid Kiwify webhook payload")

        if not self.webhook_token:
            raise InvalidSignatureError("Kiwify webhook token is not configured")
        token = signature or str(payload.get("token") or "")
        if not hmac.compare_digest(token.encode(), self.webhook_token.encode()):
            raise InvalidSignatureError("Invalid Kiwify webhook token")

        return {
            **payload,
            "id": payload.get("id") or payload.get("order_id"),
            "type": payload.get("type") or payload.get("webhook_event_type"),
        }

    async def retrieve_subscription(self, subscription_id: str) -> KiwifySubscription:
        """
        Retrieve a subscription by ID.

        Raises:
            PaymentGatewayError: If the request fails or the response is malformed
        """
        data = await self._request(
            "GET", f"/subscriptions/{subscription_id}", "retrieve_subscription"
        )
        try:
            return KiwifySubscription.model_validate(data)
        except pydantic.ValidationError as e:
            raise PaymentGatewayError(
                "Payment gateway returned a malformed subscription",
                operation="retrieve_subscription",
                details={"subscription_id": subscription_id},
            ) from e

    async def cancel_subscription(self, subscription_id: str) -> None:
        """
        Cancel a subscription.

        Raises:
            PaymentGatewayError: If the request fails
        """
        await self._request(
            "POST", f"/subscriptions/{subscription_id}/cancel", "cancel_subscription"
        )
        logger.info("Kiwify subscription canceled", extra={"subscription_id": subscription_id})

    def checkout_url(self, product_id: str, email: str, user_id: str) -> str:
        """Hosted checkout URL for a product, prefilled with the buyer's email."""
        query = urlencode({"email": email, "external_id": user_id})
        return f"{self.checkout_base_url}/{product_id}?{query}"

    def plan_for_product(self, product_id: str | None) -> str:
        """Plan granted by a Kiwify product; anything but the pro product is free."""
        if product_id is not None and product_id == self.pro_product_id:
            return PlanId.PRO.value
        return PlanId.FREE.value

    async def _request(self, method: str, path: str, operation: str) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            if self._http_client is not None:
                response = await self._http_client.request(method, url, headers=self._headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            status_code = (
                e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            )
            logger.error(
                "Kiwify request failed",
                extra={"operation": operation, "error": str(e), "http_status": status_code},
            )
            raise PaymentGatewayError(
                f"Payment gateway request failed: {operation}",
                operation=operation,
                details={"error": str(e)},
            ) from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise PaymentGatewayError(
                f"Payment gateway returned invalid JSON: {operation}",
                operation=operation,
            ) from e
