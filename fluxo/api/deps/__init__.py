"""FastAPI dependency factories."""

from fluxo.api.deps.dependencies import (
    get_billing_service,
    get_current_user_id,
    get_kiwify_gateway,
    get_payment_gateway,
    get_service_cache,
    get_settings_dependency,
    get_source_service,
    get_user_locks,
)

__all__ = [
    "get_billing_service",
    "get_current_user_id",
    "get_kiwify_gateway",
    "get_payment_gateway",
    "get_service_cache",
    "get_settings_dependency",
    "get_source_service",
    "get_user_locks",
]
