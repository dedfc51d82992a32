"""
Payment gateway boundary.

Exports:
  - PaymentGateway: Protocol consumed by the billing service
  - StripeGateway: Stripe SDK implementation
  - KiwifyGateway: Kiwify public API client
"""

from fluxo.boundary.payments.gateway import PaymentGateway
from fluxo.boundary.payments.kiwify_gateway import KiwifyGateway
from fluxo.boundary.payments.stripe_gateway import StripeGateway

__all__ = ["KiwifyGateway", "PaymentGateway", "StripeGateway"]
