"""
Custom Application Exceptions

Every business failure maps to an HTTP status and a stable error code;
the handlers in ``foodstock.main`` render them as JSON.
"""
from typing import Any, Dict, Optional


class FoodStockException(Exception):
    """Base exception for the application"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details or None,
        }


class ValidationError(FoodStockException):
    """Raised when data validation fails"""
    status_code = 400
    code = "VALIDATION_ERROR"


class BusinessLogicError(FoodStockException):
    """Raised when business rules are violated"""
    status_code = 400
    code = "BUSINESS_RULE_VIOLATION"


class InsufficientStockError(BusinessLogicError):
    """Raised when a deduction would take on-hand below zero"""
    code = "INSUFFICIENT_STOCK"


class PeriodClosedError(BusinessLogicError):
    """Raised when no open period accepts the transaction"""
    code = "PERIOD_CLOSED"


class InvalidStatusError(BusinessLogicError):
    """Raised when a document is not in the status the action requires"""
    code = "INVALID_STATUS"


class AuthenticationError(FoodStockException):
    """Raised when credentials are missing or invalid"""
    status_code = 401
    code = "NOT_AUTHENTICATED"


class InsufficientPermissionsError(FoodStockException):
    """Raised when user lacks required permissions"""
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"


class LocationAccessDeniedError(InsufficientPermissionsError):
    """Raised when user has no access to a location"""
    code = "LOCATION_ACCESS_DENIED"


class NotFoundError(FoodStockException):
    """Raised when a requested record does not exist"""
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(FoodStockException):
    """Raised when a write collides with existing state"""
    status_code = 409
    code = "CONFLICT"
