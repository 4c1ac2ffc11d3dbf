"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
Every domain failure of the print-job engine is an AppException so the
API layer can surface it as a structured, recoverable response.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("autoprint")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when the caller's role may not use an endpoint."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when a referenced Account, Document, Payment or PrintJob is absent."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class ValidationFailedError(AppException):
    """Raised when a request is well-formed but violates a business rule."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidTransitionError(AppException):
    """Raised when a state-machine guard rejects a transition."""

    def __init__(self, resource: str, resource_id: Any, current: str, target: str):
        super().__init__(
            message=f"Cannot move {resource} {resource_id} from {current} to {target}",
            error_code="ERR_STATE_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"resource": resource, "id": resource_id, "current": current, "target": target}
        )


class AlreadyFinalizedError(AppException):
    """Raised when re-verifying or re-transitioning a record that is already final."""

    def __init__(self, resource: str, resource_id: Any, current: str):
        super().__init__(
            message=f"{resource} {resource_id} is already {current}",
            error_code="ERR_STATE_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id, "current": current}
        )


class ConflictError(AppException):
    """Raised when a concurrent transition won the optimistic check first."""

    def __init__(self, message: str = "Concurrent update detected", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InsufficientFundsError(AppException):
    """Raised when a debit would take an account balance below zero."""

    def __init__(self, account_id: int, requested: Any, available: Any = None):
        super().__init__(
            message=f"Insufficient funds on account {account_id}",
            error_code="ERR_FUNDS_001",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={
                "account_id": account_id,
                "requested": str(requested),
                "available": str(available) if available is not None else None
            }
        )


class UnfundedError(AppException):
    """Raised when a print job fails the funding guard on a manual admission."""

    def __init__(self, job_id: int, total_cost: Any, balance: Any):
        super().__init__(
            message=f"Print job {job_id} is not funded",
            error_code="ERR_FUNDS_002",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={"print_job_id": job_id, "total_cost": str(total_cost), "balance": str(balance)}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances (e.g. ValueError from validators)
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return jsonable_encoder(errors)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.error(
        "Unhandled exception: %s: %s", type(exc).__name__, exc,
        exc_info=(type(exc), exc, exc.__traceback__)
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
