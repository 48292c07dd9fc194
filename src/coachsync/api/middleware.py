"""API error handling middleware — consistent error responses.

Registers FastAPI exception handlers that convert scheduling exceptions into
standardised ``{"error": {"code": "...", "message": "...", "details": ...}}``
JSON responses.

Status code mapping:
- ``ValidationError`` and request validation failures → 400 Bad Request
- ``NotFoundError`` → 404 Not Found
- ``InvalidTransitionError`` / ``ConcurrencyConflictError`` → 409 Conflict
- Any other ``Exception`` → 500 Internal Server Error
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from coachsync.api.models import ErrorDetail, ErrorResponse
from coachsync.scheduling.errors import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict | list | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
    )


async def _handle_validation_error(
    request: Request,
    exc: ValidationError,
) -> JSONResponse:
    """Return 400 for malformed scheduling input."""
    logger.info("Validation error: %s", exc)
    return _error_response(400, "VALIDATION_ERROR", str(exc))


async def _handle_request_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Return 400 (not FastAPI's default 422) for malformed request bodies/params."""
    logger.info("Request validation error on %s %s", request.method, request.url.path)
    return _error_response(
        400,
        "VALIDATION_ERROR",
        "Request validation failed",
        details=jsonable_encoder(exc.errors(), exclude={"ctx", "input", "url"}),
    )


async def _handle_not_found(
    request: Request,
    exc: NotFoundError,
) -> JSONResponse:
    """Return 404 when an assignment, template or athlete does not exist."""
    logger.info("Not found: %s", exc)
    return _error_response(
        404,
        "NOT_FOUND",
        str(exc),
        details={"kind": exc.kind, "id": str(exc.identifier)},
    )


async def _handle_invalid_transition(
    request: Request,
    exc: InvalidTransitionError,
) -> JSONResponse:
    logger.info("Rejected status transition: %s", exc)
    return _error_response(
        409,
        "INVALID_TRANSITION",
        str(exc),
        details={"current": exc.current, "requested": exc.requested},
    )


async def _handle_concurrency_conflict(
    request: Request,
    exc: ConcurrencyConflictError,
) -> JSONResponse:
    logger.warning("Concurrent modification of assignment %s", exc.assignment_id)
    return _error_response(409, "CONCURRENCY_CONFLICT", str(exc))


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that catches any unhandled exception and returns a 500.

    This sits above the Starlette exception handler layer, ensuring that
    even exceptions not caught by ``add_exception_handler`` are converted
    to the standard error envelope rather than bubbling up as raw 500s.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return _error_response(500, "INTERNAL_ERROR", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application.

    Call this from ``create_app()`` after constructing the ``FastAPI`` instance.
    """
    app.add_exception_handler(ValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_request_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(NotFoundError, _handle_not_found)  # type: ignore[arg-type]
    app.add_exception_handler(InvalidTransitionError, _handle_invalid_transition)  # type: ignore[arg-type]
    app.add_exception_handler(ConcurrencyConflictError, _handle_concurrency_conflict)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
