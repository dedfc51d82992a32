"""
Dependency injection container.

Factory functions for FastAPI dependencies.

Dependencies: fluxo.configs, fluxo.application, fluxo.boundary
System role: DI container for service injection
"""

from functools import lru_cache
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from langchain_core.embeddings import Embeddings
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.application.services import BillingService, PricePlanResolver, SourceService
from fluxo.boundary.db import get_async_db
from fluxo.boundary.embeddings import build_embeddings
from fluxo.boundary.payments import KiwifyGateway, PaymentGateway, StripeGateway
from fluxo.configs import Settings, get_settings
from fluxo.core.chunking import SentenceChunker
from fluxo.core.locks import KeyedLock


class ServiceCache:
    """Container for process-wide collaborators built once and shared by requests."""

    def __init__(self) -> None:
        self._payment_gateway: PaymentGateway | None = None
        self._kiwify_gateway: KiwifyGateway | None = None
        self._embeddings: Embeddings | None = None
        self._embeddings_built = False
        self.user_locks = KeyedLock()

    @property
    def payment_gateway(self) -> PaymentGateway:
        """Get cached Stripe gateway."""
        if self._payment_gateway is None:
            self._payment_gateway = StripeGateway(get_settings().billing)
        return self._payment_gateway

    @property
    def kiwify_gateway(self) -> KiwifyGateway | None:
        """Get cached Kiwify gateway (None when Kiwify is disabled)."""
        settings = get_settings().kiwify
        if not settings.enabled:
            return None
        if self._kiwify_gateway is None:
            self._kiwify_gateway = KiwifyGateway(settings)
        return self._kiwify_gateway

    @property
    def embeddings(self) -> Embeddings | None:
        """Get cached embeddings client (None when embeddings are disabled)."""
        if not self._embeddings_built:
            self._embeddings = build_embeddings(get_settings().rag)
            self._embeddings_built = True
        return self._embeddings

    def clear(self) -> None:
        """Clear all cached instances."""
        self._payment_gateway = None
        self._kiwify_gateway = None
        self._embeddings = None
        self._embeddings_built = False
        self.user_locks = KeyedLock()


# Global service cache
_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    """Get service cache singleton."""
    return _service_cache


@lru_cache
def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


def get_payment_gateway() -> PaymentGateway:
    """Get the shared payment gateway client."""
    return get_service_cache().payment_gateway


def get_kiwify_gateway() -> KiwifyGateway | None:
    """Get the shared Kiwify client, if enabled."""
    return get_service_cache().kiwify_gateway


def get_user_locks() -> KeyedLock:
    """Get the process-wide per-user lock registry."""
    return get_service_cache().user_locks


def get_embeddings() -> Embeddings | None:
    """Get the shared embeddings client, if enabled."""
    return get_service_cache().embeddings


def get_billing_service(
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    kiwify_gateway: KiwifyGateway | None = Depends(get_kiwify_gateway),
    user_locks: KeyedLock = Depends(get_user_locks),
    settings: Settings = Depends(get_settings_dependency),
) -> BillingService:
    """
    Get billing service instance.

    Args:
        db: Async database session (injected via Depends)
        gateway: Stripe gateway (injected via Depends)
        kiwify_gateway: Kiwify gateway or None (injected via Depends)
        user_locks: Per-user lock registry (injected via Depends)
        settings: Application settings (injected via Depends)

    Returns:
        BillingService: Billing service bound to the request session
    """
    return BillingService(
        db=db,
        gateway=gateway,
        plan_resolver=PricePlanResolver.from_settings(settings.billing),
        user_locks=user_locks,
        kiwify_gateway=kiwify_gateway,
    )


def get_source_service(
    db: AsyncSession = Depends(get_async_db),
    embeddings: Embeddings | None = Depends(get_embeddings),
    settings: Settings = Depends(get_settings_dependency),
) -> SourceService:
    """
    Get source service instance.

    Args:
        db: Async database session (injected via Depends)
        embeddings: Embeddings client or None (injected via Depends)
        settings: Application settings (injected via Depends)

    Returns:
        SourceService: Source service bound to the request session
    """
    chunker = SentenceChunker(
        max_chunk_size=settings.rag.max_chunk_size,
        overlap_sentences=settings.rag.overlap_sentences,
    )
    return SourceService(db=db, chunker=chunker, embeddings=embeddings)


def get_current_user_id(x_user_id: str = Header(..., alias="X-User-ID")) -> UUID:
    """
    Read the authenticated user's ID set by the upstream auth layer.

    Args:
        x_user_id: X-User-ID header value

    Returns:
        UUID: Caller's user ID

    Raises:
        HTTPException: 401 if the header is not a valid UUID
    """
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-ID header",
        )
