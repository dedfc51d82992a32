"""
Router error handling utilities.

Provides a decorator that maps service-layer exceptions to HTTP
responses consistently across endpoints.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException, status

from fluxo.core.exceptions import (
    EmbeddingError,
    InvalidSignatureError,
    NotFoundError,
    PaymentGatewayError,
    SubscriptionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Type for the decorated function
F = TypeVar("F", bound=Callable[..., Any])


def handle_service_errors(func: F) -> F:
    """
    Decorator to transform service errors into HTTPExceptions.

    Mapping:
    - ValidationError -> 400
    - InvalidSignatureError -> 401
    - NotFoundError -> 404
    - SubscriptionError -> 409
    - PaymentGatewayError, EmbeddingError -> 502
    - anything else -> 500 (logged with traceback)
    """
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)

        except HTTPException:
            raise

        except ValidationError as e:
            logger.warning("Invalid request", extra={"error": str(e)})
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

        except InvalidSignatureError as e:
            logger.warning("Webhook verification failed", extra={"error": str(e)})
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)

        except NotFoundError as e:
            logger.warning("Resource not found", extra={"error": str(e)})
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

        except SubscriptionError as e:
            logger.warning("Subscription conflict", extra={"error": str(e)})
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

        except (PaymentGatewayError, EmbeddingError) as e:
            logger.error("Upstream service failure", extra={"error": str(e)})
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

        except Exception as e:
            logger.exception("Unexpected failure", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An internal error occurred",
            )

    return wrapper  # type: ignore
