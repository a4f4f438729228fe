"""
Error taxonomy for the inventory services.

Every error is terminal for the current request: callers surface the message
to the user and never retry.
"""

from typing import Any, Dict, Optional


class InventoryServiceError(RuntimeError):
    status_code = 500
    error_code = "inventory_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(InventoryServiceError):
    status_code = 400
    error_code = "validation_error"


class NotFoundError(InventoryServiceError):
    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        super().__init__(message, details={"resource": resource, "id": identifier} if identifier else None)
        self.resource = resource
        self.identifier = identifier


class ForbiddenError(InventoryServiceError):
    status_code = 403
    error_code = "forbidden"


class AlreadyReceivedError(InventoryServiceError):
    status_code = 409
    error_code = "already_received"


class InsufficientStockError(InventoryServiceError):
    status_code = 409
    error_code = "insufficient_stock"

    def __init__(self, message: str, *, requested: int, available: Optional[int] = None):
        details = {"requested": requested}
        if available is not None:
            details["available"] = available
        super().__init__(message, details=details)
        self.requested = requested
        self.available = available


class PersistenceError(InventoryServiceError):
    status_code = 500
    error_code = "persistence_error"
