"""
Domain errors

Each error is an HTTPException carrying its own status code, so routes and
services can raise them directly and the app renders them in the standard
response envelope.
"""
from typing import Optional

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(status_code=type(self).status_code, detail=message or self.default_message)

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(ApiError):
    status_code = 400
    default_message = "Invalid request"


class EmptyCart(ValidationError):
    default_message = "Cart is empty"


class InsufficientStock(ApiError):
    status_code = 400
    default_message = "Insufficient stock"


class InvalidState(ApiError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Not authorized"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Admin access required"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Already exists"


class AlreadyReviewed(Conflict):
    default_message = "You have already reviewed this product"


class ServiceUnavailable(ApiError):
    status_code = 503
    default_message = "Database not available"
