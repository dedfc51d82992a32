"""
Unified application settings.

Aggregates all configuration modules into a single Settings class.
Provides dependency injection factory for FastAPI.

Dependencies: All config modules
System role: Central configuration aggregator for the application
"""

from functools import lru_cache

from fluxo.configs.base import BaseSettings
from fluxo.configs.billing import BillingSettings
from fluxo.configs.database import DatabaseSettings
from fluxo.configs.kiwify import KiwifySettings
from fluxo.configs.rag import RagSettings


class Settings(BaseSettings):
    """Unified application settings aggregating all config modules."""

    database: DatabaseSettings = DatabaseSettings()
    billing: BillingSettings = BillingSettings()
    kiwify: KiwifySettings = KiwifySettings()
    rag: RagSettings = RagSettings()


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns Settings instance, cached for dependency injection.
    Environment variables loaded once at startup.

    Returns:
        Settings: Application settings instance

    Usage:
        from fluxo.configs import get_settings
        settings = get_settings()
    """
    return Settings()
