"""
Domain errors raised by Fluxo services.

Each error carries a human-readable message plus a details dict that ends
up in log records; the API layer maps error classes to status codes.

System role: Shared error vocabulary between services and routers
"""

from typing import Any


class FluxoException(Exception):
    """Base exception for all Fluxo application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Args:
            message: Safe to return to API clients
            details: Log-only context (IDs, upstream error text)
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(FluxoException):
    """Raised when input validation fails or required data is missing."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class NotFoundError(FluxoException):
    """Raised when a required record does not exist."""

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        resource_id: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize not found error.

        Args:
            message: Error message
            resource: Kind of record that was looked up (user, subscription, source)
            resource_id: Identifier used for the lookup
            details: Additional context
        """
        details = details or {}
        if resource:
            details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        super().__init__(message, details)


class InvalidSignatureError(FluxoException):
    """Raised when a webhook payload fails signature or structure verification."""

    pass


class SubscriptionError(FluxoException):
    """Raised when a billing operation conflicts with the current subscription state."""

    def __init__(
        self,
        message: str,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize subscription error.

        Args:
            message: Error message
            user_id: User whose subscription blocked the operation
            details: Additional context
        """
        details = details or {}
        if user_id:
            details["user_id"] = user_id
        super().__init__(message, details)


class PaymentGatewayError(FluxoException):
    """Raised when a call to the payment gateway fails."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize payment gateway error.

        Args:
            message: Error message
            operation: Gateway operation that failed (retrieve_subscription, ...)
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class EmbeddingError(FluxoException):
    """Raised when chunk embedding fails during source ingestion."""

    pass
