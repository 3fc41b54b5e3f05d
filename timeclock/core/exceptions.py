"""
Domain errors and global exception handlers.

Services raise the ``TimeclockError`` family; the handlers below turn
them (and anything unexpected) into JSON without leaking stack traces.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class TimeclockError(Exception):
    """Base class for every error the engine reports to a caller."""

    status_code = 400
    default_detail = "Request could not be processed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationFailed(TimeclockError):
    status_code = 422
    default_detail = "Invalid input"


class InvalidDateRange(ValidationFailed):
    default_detail = "end_date must not be before start_date"


class ConflictError(TimeclockError):
    status_code = 409
    default_detail = "Request conflicts with the current state"


class AlreadyClockedIn(ConflictError):
    default_detail = "You already have an active time session"


class SessionClosed(ConflictError):
    default_detail = "Time session is already completed"


class AlreadyClosed(ConflictError):
    default_detail = "Already closed"


class BreakAlreadyActive(ConflictError):
    default_detail = "You already have an active break"


class BreakLimitReached(ConflictError):
    default_detail = "Daily break limit reached"


class NoActiveBreak(ConflictError):
    default_detail = "No active break"


class SameTeam(ConflictError):
    default_detail = "You are already working on this team"


class ScheduleConflict(ConflictError):
    default_detail = "An active schedule already exists for this user, team and weekday"


class NotFoundError(TimeclockError):
    status_code = 404
    default_detail = "Not found"


class NotOwnedError(TimeclockError):
    status_code = 403
    default_detail = "Resource belongs to another user"


class PermissionDenied(TimeclockError):
    status_code = 403
    default_detail = "Not allowed"


class DependencyError(TimeclockError):
    status_code = 503
    default_detail = "A required service is unavailable"


# ── Handlers ────────────────────────────────────────────────────────
async def _timeclock_error_handler(_request: Request, exc: TimeclockError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Dependency failure: %s", exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False, "error": type(exc).__name__},
    )


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
        headers=getattr(exc, "headers", None),
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(TimeclockError, _timeclock_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
