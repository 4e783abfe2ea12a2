"""Custom exception hierarchy and handlers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code = 400
    code = "app_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def details(self) -> dict[str, Any] | None:
        return None


class NotFoundException(AppException):
    """Raised when entity is not found."""

    status_code = 404
    code = "not_found"


class ConflictException(AppException):
    """Raised when entity conflicts with current state."""

    status_code = 409
    code = "conflict"


class UnauthorizedException(AppException):
    """Raised when user has no rights for operation."""

    status_code = 403
    code = "forbidden"


class BusinessRuleException(AppException):
    """Raised when business rule validation fails."""

    status_code = 422
    code = "business_rule_violation"


class InvalidIntervalError(BusinessRuleException):
    """Interval is zero-length or ends before it starts."""

    code = "invalid_interval"


class InvalidRecurrenceRuleError(BusinessRuleException):
    """Recurrence rule is malformed or expands past the occurrence ceiling."""

    code = "invalid_recurrence_rule"


class ResourceUnavailableError(ConflictException):
    """Resource is inactive or not bookable."""

    code = "resource_unavailable"


class InvalidStateTransitionError(ConflictException):
    """Lifecycle transition is not permitted from the current state."""

    code = "invalid_state_transition"

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid booking transition: {current} -> {target}")

    @property
    def details(self) -> dict[str, Any]:
        return {"current": self.current, "target": self.target}


class BookingConflictError(ConflictException):
    """Candidate interval overlaps one or more active bookings."""

    code = "booking_conflict"

    def __init__(self, conflicting_booking_ids: Iterable[UUID], message: str | None = None) -> None:
        self.conflicting_booking_ids = list(conflicting_booking_ids)
        super().__init__(message or "Requested interval overlaps an active booking")

    @property
    def details(self) -> dict[str, Any]:
        return {"conflicting_booking_ids": [str(item) for item in self.conflicting_booking_ids]}


async def app_exception_handler(_: Request, exc: AppException) -> JSONResponse:
    """Handle custom domain exceptions."""
    error: dict[str, Any] = {"code": exc.code, "message": exc.message}
    if exc.details is not None:
        error["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content={"error": error})


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions in unified shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": "http_error", "message": str(exc.detail)}},
    )


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


def register_exception_handlers(app) -> None:
    """Register global exception handlers."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
