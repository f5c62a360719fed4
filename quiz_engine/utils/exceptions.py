"""
quiz_engine/utils/exceptions.py
Centralized custom exceptions and the global handlers that render them
Used across the engine for consistent error responses
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# CUSTOM APPLICATION EXCEPTIONS (Business Logic)
# =============================================================================

class AppException(HTTPException):
    """Base class for all custom exceptions"""
    def __init__(
        self,
        status_code: int,
        code: str,
        detail: str,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.extra = extra or {}
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class UnauthorizedException(AppException):
    """401 - Missing or invalid token"""
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(401, "UNAUTHORIZED", detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenException(AppException):
    """403 - Principal has the wrong role"""
    def __init__(self, detail: str = "You do not have permission to perform this action", code: str = "FORBIDDEN"):
        super().__init__(403, code, detail)


class NotFoundException(AppException):
    """404 - Resource not found (or not visible to the caller)"""
    def __init__(self, detail: str = "Resource not found", code: str = "NOT_FOUND"):
        super().__init__(404, code, detail)


class ConflictException(AppException):
    """409 - Resource conflict"""
    def __init__(self, detail: str = "Resource conflict", code: str = "CONFLICT", extra: Optional[Dict[str, Any]] = None):
        super().__init__(409, code, detail, extra=extra)


class BadRequestException(AppException):
    """400 - Client error"""
    def __init__(self, detail: str = "Bad request", code: str = "BAD_REQUEST"):
        super().__init__(400, code, detail)


class ValidationException(AppException):
    """422 - Field-level validation failed inside the service layer"""
    def __init__(self, errors: List[Dict[str, str]], detail: str = "Request validation failed"):
        self.errors = errors
        super().__init__(422, "VALIDATION_ERROR", detail, extra={"errors": errors})

    @classmethod
    def single(cls, field: str, message: str, type_: str = "value_error") -> "ValidationException":
        return cls([{"field": field, "message": message, "type": type_}])


class InternalServerErrorException(AppException):
    """500 - Server error"""
    def __init__(self, detail: str = "Internal server error", code: str = "INTERNAL_ERROR"):
        super().__init__(500, code, detail)


# =============================================================================
# QUIZ ENGINE SPECIFIC
# =============================================================================

class IneligibleSubmissionException(AppException):
    """Eligibility gate rejected the submission; each reason has its own code"""

    STATUS_BY_CODE = {
        "QUIZ_NOT_OPEN": 403,
        "QUIZ_CLOSED": 403,
        "LATE_DEADLINE_PASSED": 403,
        "MAX_ATTEMPTS_EXCEEDED": 409,
    }

    def __init__(self, code: str, detail: str):
        super().__init__(self.STATUS_BY_CODE.get(code, 403), code, detail)


class PendingReviewsException(AppException):
    """409 - Grading cannot complete while essay reviews are outstanding"""
    def __init__(self, pending_count: int):
        self.pending_count = pending_count
        super().__init__(
            409,
            "PENDING_REVIEWS",
            f"{pending_count} essay answer(s) still pending review",
            extra={"pendingCount": pending_count},
        )


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle all custom AppException errors"""
    response = {
        "success": False,
        "error": {
            "code": exc.code,
            "detail": exc.detail,
            "path": str(request.url),
            "method": request.method,
            "timestamp": _timestamp(),
            **exc.extra,
        }
    }

    logger.warning(f"{exc.code} - {exc.detail} - {request.url}")
    return JSONResponse(
        status_code=exc.status_code,
        content=response,
        headers=exc.headers
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with one entry per offending field"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    response = {
        "success": False,
        "error": {
            "code": "VALIDATION_ERROR",
            "detail": "Request validation failed",
            "errors": errors,
            "path": str(request.url),
            "timestamp": _timestamp(),
        }
    }

    logger.warning(f"Validation error: {errors} - {request.url}")
    return JSONResponse(status_code=422, content=response)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected errors (never expose stack trace)"""
    logger.error(f"Unhandled exception: {exc} - {request.url}", exc_info=True)

    response = {
        "success": False,
        "error": {
            "code": "INTERNAL_ERROR",
            "detail": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID", "unknown"),
            "timestamp": _timestamp(),
        }
    }

    return JSONResponse(status_code=500, content=response)
