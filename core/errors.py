# core/errors.py
"""
Service-layer exceptions.

Services raise these; ``register_error_handlers`` turns them into JSON
responses so routes never have to translate them by hand.
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class ServiceError(Exception):
    """Base exception for all engine errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "service_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, resource_type: str, identifier: Any) -> None:
        super().__init__(
            f"{resource_type} with identifier '{identifier}' not found",
            {"resource": resource_type, "id": identifier},
        )
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class QuotaExceededError(ServiceError):
    """Weekly booking allowance is used up."""

    status_code = status.HTTP_409_CONFLICT
    code = "quota_exceeded"


class PaymentRequiredError(ServiceError):
    """Billing gate did not report the enrollment as paid."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "payment_required"


class InvalidStateError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class ValidationError(ServiceError):
    status_code = 422
    code = "validation_error"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code, **exc.details},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
