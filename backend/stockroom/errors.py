# Overview: Service-layer exception taxonomy mapped to HTTP status codes by the routes.

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors a route may translate into a JSON response."""
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""
    status_code = 400
    public_message = "Invalid input"


class NotFoundError(ServiceError):
    status_code = 404
    public_message = "Not found"


class ProductNotFound(NotFoundError):
    public_message = "Product not found"


class UserNotFound(NotFoundError):
    public_message = "User not found"


class ConflictError(ServiceError, ValueError):
    """409-level business rule conflict (e.g., duplicate username)."""
    status_code = 409
    public_message = "Conflict"


class AccessDenied(ServiceError):
    status_code = 403
    public_message = "Access denied"


class InsufficientStock(ServiceError):
    status_code = 400
    public_message = "Insufficient stock"

    def __init__(self, product_id: int, requested: int, available: int | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(self.public_message)


class CodeMismatchOrExpired(ServiceError):
    status_code = 400
    public_message = "Verification code is invalid or has expired"


class DeliveryFailure(ServiceError):
    status_code = 500
    public_message = "Unable to deliver verification email"


class StorageFailure(ServiceError):
    """
    Transient storage problem. The failed scope left no partial state,
    so the caller may retry the whole call.
    """
    status_code = 500
    retryable = True
