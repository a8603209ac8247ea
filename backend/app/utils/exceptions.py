"""
Domain exceptions for the marketplace API.

WHAT: Error taxonomy shared by services, endpoints and the realtime channel
WHY: Consistent {"Error": message} responses across every route
HOW: Exception classes carrying a message, code and optional details
"""

from typing import Optional, Any


class ThriftlyError(Exception):
    """Base class for business logic exceptions."""

    status_code = 400

    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class ValidationError(ThriftlyError):
    """Missing or invalid input (no file provided, duplicate email, ...)."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message=message, code="VALIDATION_ERROR", details=details)


class AuthError(ThriftlyError):
    """Missing, invalid or expired credentials."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message=message, code="AUTH_ERROR")


class PermissionDeniedError(ThriftlyError):
    """Authenticated, but not allowed to touch this resource."""

    status_code = 403

    def __init__(self, message: str = "Not allowed"):
        super().__init__(message=message, code="PERMISSION_DENIED")


class NotFoundError(ThriftlyError):
    """Referenced entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None):
        message = f"{entity} not found" if entity_id is None else f"{entity} not found: {entity_id}"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id}
        )


class ConflictError(ThriftlyError):
    """Request conflicts with current state (self-offer, already following, ...)."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message=message, code="CONFLICT", details=details)


class StorageError(ThriftlyError):
    """Persistence failure. The client only ever sees a generic message."""

    status_code = 500

    def __init__(self, message: str = "Storage failure"):
        super().__init__(message=message, code="STORAGE_ERROR")
