"""
Application services.

Exports:
  - BillingService: Webhook reconciliation and checkout/portal/cancel flows
  - PricePlanResolver: Price ID -> plan ID mapping
  - SourceService: Knowledge-base source ingestion
"""

from fluxo.application.services.billing_service import BillingService
from fluxo.application.services.plan_resolver import PricePlanResolver
from fluxo.application.services.source_service import SourceService

__all__ = ["BillingService", "PricePlanResolver", "SourceService"]
