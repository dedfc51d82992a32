"""
Billing API endpoints.

Routes:
    POST /billing/checkout - Start a subscription checkout
    GET /billing/portal - Open the customer portal
    GET /billing/subscription - Stored subscription of the caller
    POST /billing/cancel - Cancel with the gateway billing the caller
    POST /billing/webhook - Stripe webhook receiver
    POST /billing/webhook/{gateway} - Webhook receiver keyed by gateway name

Dependencies: fluxo.application.services.billing_service, fluxo.models.billing
System role: Subscription billing HTTP API
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request

from fluxo.api.deps import (
    get_billing_service,
    get_current_user_id,
    get_settings_dependency,
)
from fluxo.api.routers.router_utils import handle_service_errors
from fluxo.application.services.billing_service import BillingService
from fluxo.configs import Settings
from fluxo.models.billing import (
    CancelSubscriptionResponse,
    CheckoutSessionResponse,
    CreateCheckoutSessionRequest,
    GatewayName,
    PortalSessionResponse,
    SubscriptionResponse,
    WebhookAckResponse,
)

router = APIRouter(prefix="/billing", tags=["billing"])

# Header carrying each gateway's webhook signature or token
WEBHOOK_SIGNATURE_HEADERS = {
    GatewayName.STRIPE.value: "Stripe-Signature",
    GatewayName.KIWIFY.value: "x-kiwify-webhook-token",
}


@router.post("/checkout", response_model=CheckoutSessionResponse)
@handle_service_errors
async def create_checkout_session(
    request: CreateCheckoutSessionRequest,
    user_id: UUID = Depends(get_current_user_id),
    billing_service: BillingService = Depends(get_billing_service),
) -> CheckoutSessionResponse:
    """
    Start a subscription checkout for the caller.

    Args:
        request: Price, redirect URLs and gateway
        user_id: Caller's user ID
        billing_service: Injected BillingService

    Returns:
        CheckoutSessionResponse: Session ID and hosted checkout URL

    Raises:
        HTTPException(404): User not found
        HTTPException(409): User already has an active subscription
        HTTPException(502): Payment gateway failure
    """
    result = await billing_service.create_checkout_session(
        user_id=user_id,
        price_id=request.price_id,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
        gateway=request.gateway.value,
    )
    return CheckoutSessionResponse(**result)


@router.get("/portal", response_model=PortalSessionResponse)
@handle_service_errors
async def create_portal_session(
    return_url: str | None = Query(None, alias="returnUrl"),
    user_id: UUID = Depends(get_current_user_id),
    billing_service: BillingService = Depends(get_billing_service),
    settings: Settings = Depends(get_settings_dependency),
) -> PortalSessionResponse:
    """
    Open the customer portal for the caller.

    Args:
        return_url: Where the portal returns to (defaults to STRIPE_PORTAL_RETURN_URL)
        user_id: Caller's user ID
        billing_service: Injected BillingService
        settings: Application settings

    Returns:
        PortalSessionResponse: Portal URL

    Raises:
        HTTPException(404): Caller has no billing customer
    """
    result = await billing_service.create_customer_portal_session(
        user_id, return_url or settings.billing.portal_return_url
    )
    return PortalSessionResponse(**result)


@router.get("/subscription", response_model=SubscriptionResponse)
@handle_service_errors
async def get_subscription(
    user_id: UUID = Depends(get_current_user_id),
    billing_service: BillingService = Depends(get_billing_service),
) -> SubscriptionResponse:
    """Get the caller's stored subscription (404 if none)."""
    result = await billing_service.get_subscription_status(user_id)
    return SubscriptionResponse(**result)


@router.post("/cancel", response_model=CancelSubscriptionResponse)
@handle_service_errors
async def cancel_subscription(
    user_id: UUID = Depends(get_current_user_id),
    billing_service: BillingService = Depends(get_billing_service),
) -> CancelSubscriptionResponse:
    """
    Cancel the caller's subscription with the gateway that bills it.

    Stripe subscriptions end with the billing period; Kiwify cancels at once.

    Raises:
        HTTPException(404): Caller has no gateway subscription
        HTTPException(502): Payment gateway failure
    """
    result = await billing_service.cancel_subscription(user_id)
    return CancelSubscriptionResponse(**result)


@router.post("/webhook", response_model=WebhookAckResponse)
@handle_service_errors
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    billing_service: BillingService = Depends(get_billing_service),
) -> WebhookAckResponse:
    """
    Receive a Stripe webhook delivery.

    The raw body is passed through untouched; signature verification
    needs the exact bytes Stripe signed.

    Raises:
        HTTPException(401): Missing or invalid signature
        HTTPException(400): Event lacks a usable userId
    """
    raw_body = await request.body()
    result = await billing_service.handle_webhook(raw_body, stripe_signature or "")
    return WebhookAckResponse(**result)


@router.post("/webhook/{gateway}", response_model=WebhookAckResponse)
@handle_service_errors
async def gateway_webhook(
    gateway: str,
    request: Request,
    billing_service: BillingService = Depends(get_billing_service),
) -> WebhookAckResponse:
    """
    Receive a webhook delivery from the named gateway.

    Raises:
        HTTPException(400): Unknown or disabled gateway, or unusable event
        HTTPException(401): Missing or invalid signature/token
    """
    header = WEBHOOK_SIGNATURE_HEADERS.get(gateway)
    signature = request.headers.get(header, "") if header else ""
    raw_body = await request.body()
    result = await billing_service.handle_webhook(raw_body, signature, gateway=gateway)
    return WebhookAckResponse(**result)
