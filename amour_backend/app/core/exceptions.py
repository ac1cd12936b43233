"""
Custom exceptions and error handlers for consistent error responses.

Every failure leaves the API in the same envelope:
{"success": false, "error_code": ..., "message": ..., "details": {...}}
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from typing import Any, Dict

logger = logging.getLogger("amour")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InvalidAmountError(AppException):
    """Raised when an amount is non-numeric, non-finite or not positive."""

    def __init__(self, amount: Any = None):
        super().__init__(
            message="Amount must be a positive number",
            error_code="ERR_INVALID_AMOUNT",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"amount": amount}
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None, error_code: str = "ERR_NOT_FOUND_001"):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AccountNotFoundError(ResourceNotFoundError):
    """Raised when a credit operation targets a missing account."""

    def __init__(self, account_id: Any = None):
        super().__init__("Account", account_id, error_code="ERR_ACCOUNT_NOT_FOUND")


class PayeeNotFoundError(ResourceNotFoundError):
    """Raised when a payout targets a missing influencer."""

    def __init__(self, influencer_id: Any = None):
        super().__init__("Influencer", influencer_id, error_code="ERR_PAYEE_NOT_FOUND")


class InsufficientPendingError(AppException):
    """Raised when a payout exceeds the influencer's pending payment."""

    def __init__(self, pending_payment: float, requested: float):
        super().__init__(
            message="Insufficient pending payment",
            error_code="ERR_INSUFFICIENT_PENDING",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"pending_payment": pending_payment, "requested": requested}
        )


class InvalidCategoryError(AppException):
    """Raised when a usage category filter is not a known category."""

    def __init__(self, category: Any):
        super().__init__(
            message=f"Unknown usage category '{category}'",
            error_code="ERR_INVALID_CATEGORY",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"category": category}
        )


class AccountExistsError(AppException):
    """Raised when signing up with a phone number that already has an account."""

    def __init__(self, phone: str):
        super().__init__(
            message="An account with this phone number already exists",
            error_code="ERR_ACCOUNT_EXISTS",
            status_code=status.HTTP_409_CONFLICT,
            details={"phone": phone}
        )


class StoreUnavailableError(AppException):
    """Raised when the database cannot be reached or a call times out."""

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(
            message=message,
            error_code="ERR_STORE_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


# Global Exception Handlers

def error_envelope(error_code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error_code": error_code,
        "message": message,
        "details": jsonable_encoder(details or {})
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.error_code, exc.message, exc.details)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(error_code, exc.detail),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_envelope("ERR_VALIDATION", "Validation error", {"errors": exc.errors()})
    )


async def store_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for connection failures and pool/statement timeouts."""
    logger.error(
        "Store unavailable",
        extra={"path": request.url.path, "error_type": type(exc).__name__}
    )
    return await app_exception_handler(request, StoreUnavailableError())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope("ERR_INTERNAL_SERVER", "An internal server error occurred")
    )


STORE_ERRORS = (OperationalError, PoolTimeoutError)
