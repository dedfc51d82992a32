"""
Price to plan resolution.

Maps gateway price IDs to internal plan IDs through an explicit table
built from billing settings.

Dependencies: fluxo.configs.billing, fluxo.core.exceptions
System role: Plan lookup for subscription reconciliation
"""

import logging
from collections.abc import Mapping

from fluxo.configs.billing import BillingSettings
from fluxo.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


class PricePlanResolver:
    """
    Resolve gateway price IDs to plan IDs.

    Unknown prices fall back to a configured plan with a warning, or are
    rejected when strict mode is on.

    Attributes:
        price_to_plan: Explicit price ID -> plan ID table
        fallback_plan: Plan assigned to unknown prices
        strict: Reject unknown prices instead of falling back
    """

    def __init__(
        self,
        price_to_plan: Mapping[str, str],
        fallback_plan: str = "free",
        strict: bool = False,
    ) -> None:
        self.price_to_plan = dict(price_to_plan)
        self.fallback_plan = fallback_plan
        self.strict = strict

    @classmethod
    def from_settings(cls, settings: BillingSettings) -> "PricePlanResolver":
        """
        Build a resolver from billing settings.

        Args:
            settings: Billing settings (STRIPE_PRICE_PRO, STRIPE_PRICE_PLAN_MAP, ...)

        Returns:
            PricePlanResolver: Configured resolver
        """
        return cls(
            price_to_plan=settings.price_to_plan,
            fallback_plan=settings.unknown_price_plan,
            strict=settings.strict_price_mapping,
        )

    def resolve(self, price_id: str | None) -> str:
        """
        Return the plan ID for a price ID.

        Args:
            price_id: Gateway price ID, None when the subscription has no items

        Returns:
            str: Plan ID

        Raises:
            ValidationError: If the price is unknown and strict mode is on
        """
        if price_id is not None and price_id in self.price_to_plan:
            return self.price_to_plan[price_id]

        if self.strict:
            raise ValidationError(
                f"Unknown price ID '{price_id}'",
                field="price_id",
                details={"known_prices": sorted(self.price_to_plan)},
            )

        logger.warning(
            "Unknown price ID, using fallback plan",
            extra={"price_id": price_id, "fallback_plan": self.fallback_plan},
        )
        return self.fallback_plan
