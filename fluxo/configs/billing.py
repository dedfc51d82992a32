"""
Billing configuration settings.

Stripe credentials, the price -> plan mapping, the network limits
applied to every gateway call and the expiration grace period.

Dependencies: pydantic, pydantic_settings
System role: Payment gateway configuration for subscription billing
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from fluxo.configs.base import BaseSettings


class BillingSettings(BaseSettings):
    """Stripe billing configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STRIPE_",
        case_sensitive=False,
        extra="ignore",
    )

    secret_key: str = Field(default="", description="Stripe secret API key")
    webhook_secret: str = Field(default="", description="Webhook endpoint signing secret")

    price_pro: str | None = Field(default=None, description="Stripe price ID of the pro plan")
    price_plan_map: dict[str, str] = Field(
        default_factory=dict,
        description="Extra price ID -> plan ID entries (JSON object)",
    )
    unknown_price_plan: str = Field(
        default="free",
        description="Plan assigned when a subscription carries an unmapped price ID",
    )
    strict_price_mapping: bool = Field(
        default=False,
        description="Reject unmapped price IDs instead of falling back",
    )

    request_timeout: float = Field(
        default=30.0, description="Timeout in seconds for every Stripe HTTP request"
    )
    max_network_retries: int = Field(
        default=2, description="Automatic retries on Stripe network failures"
    )
    portal_return_url: str = Field(
        default="http://localhost:3000/billing",
        description="Default return URL for the customer portal",
    )
    expiration_grace_days: int = Field(
        default=3,
        ge=0,
        description="Days a lapsed paid subscription stays past_due before reverting to free",
    )

    @property
    def price_to_plan(self) -> dict[str, str]:
        """
        Build the full price ID -> plan ID table.

        Returns:
            dict[str, str]: Configured mapping including the pro price
        """
        mapping = dict(self.price_plan_map)
        if self.price_pro:
            mapping.setdefault(self.price_pro, "pro")
        return mapping
