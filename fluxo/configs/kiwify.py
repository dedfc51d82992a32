"""
Kiwify gateway configuration settings.

Credentials and product mapping for the optional second payment gateway.
The gateway stays disabled unless KIWIFY_ENABLED is set.

Dependencies: pydantic, pydantic_settings
System role: Secondary payment gateway configuration
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from fluxo.configs.base import BaseSettings


class KiwifySettings(BaseSettings):
    """Kiwify gateway configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KIWIFY_",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = Field(default=False, description="Accept Kiwify webhooks and checkouts")
    api_token: str = Field(default="", description="Bearer token of the Kiwify public API")
    account_id: str = Field(default="", description="Kiwify account ID header value")
    webhook_token: str = Field(
        default="", description="Shared token every webhook delivery must carry"
    )

    base_url: str = Field(
        default="https://public-api.kiwify.com/v1", description="Kiwify API base URL"
    )
    checkout_base_url: str = Field(
        default="https://pay.kiwify.com.br", description="Hosted checkout base URL"
    )
    pro_product_id: str | None = Field(
        default=None, description="Kiwify product ID sold as the pro plan"
    )
    request_timeout: float = Field(
        default=30.0, description="Timeout in seconds for every Kiwify HTTP request"
    )
