"""
Admin billing API endpoints.

Routes:
    POST /admin/billing/check-expired - Downgrade lapsed paid subscriptions

Dependencies: fluxo.application.services.billing_service, fluxo.models.billing
System role: Billing maintenance HTTP API (called by a scheduler)
"""

from fastapi import APIRouter, Depends

from fluxo.api.deps import get_billing_service, get_settings_dependency
from fluxo.api.routers.router_utils import handle_service_errors
from fluxo.application.services.billing_service import BillingService
from fluxo.configs import Settings
from fluxo.models.billing import ExpirationReport

router = APIRouter(prefix="/admin/billing", tags=["admin"])


@router.post("/check-expired", response_model=ExpirationReport)
@handle_service_errors
async def check_expired_subscriptions(
    billing_service: BillingService = Depends(get_billing_service),
    settings: Settings = Depends(get_settings_dependency),
) -> ExpirationReport:
    """
    Run one expiration sweep.

    Uses STRIPE_EXPIRATION_GRACE_DAYS as the grace period.

    Returns:
        ExpirationReport: Number of rows moved to past_due and to free
    """
    result = await billing_service.check_expired_subscriptions(
        grace_period_days=settings.billing.expiration_grace_days
    )
    return ExpirationReport(**result)
