"""
Database configuration settings.

Manages PostgreSQL connection parameters for SQLAlchemy.
A full DATABASE_URL (as provided by most hosting platforms) takes
precedence over the individual POSTGRES_* fields.

Dependencies: pydantic, pydantic_settings
System role: Database connection configuration for ORM
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from fluxo.configs.base import BaseSettings


class DatabaseSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="POSTGRES_",
        case_sensitive=False,
        extra="ignore",
    )

    url: str | None = Field(
        default=None,
        validation_alias="DATABASE_URL",
        description="Full database URL; overrides host/port/user/password/db",
    )

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL user")
    password: str = Field(default="postgres", description="PostgreSQL password")
    db: str = Field(default="fluxo", description="PostgreSQL database name")

    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=20, description="Maximum overflow connections")
    pool_timeout: int = Field(default=30, description="Connection pool timeout in seconds")
    echo_sql: bool = Field(default=False, description="Echo SQL statements to logs")

    @property
    def async_database_url(self) -> str:
        """
        Construct async SQLAlchemy connection URL.

        Returns:
            str: SQLAlchemy async-compatible database URL (asyncpg driver)
        """
        if self.url:
            # Hosting platforms hand out postgres:// URLs without a driver
            for prefix in ("postgres://", "postgresql://"):
                if self.url.startswith(prefix):
                    return "postgresql+asyncpg://" + self.url[len(prefix):]
            return self.url
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.db}"
        )

    @property
    def is_sqlite(self) -> bool:
        """True when the configured URL points at SQLite (local dev and tests)."""
        return self.async_database_url.startswith("sqlite")
