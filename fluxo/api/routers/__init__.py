"""API routers."""

from .admin_billing import router as admin_billing_router
from .admin_sources import router as admin_sources_router
from .billing import router as billing_router
from .health import router as health_router

__all__ = [
    "admin_billing_router",
    "admin_sources_router",
    "billing_router",
    "health_router",
]
