"""Council API error handling.

Exception handlers that turn application and framework errors into the
error envelope produced by make_error_response.

Global exception handlers:
- SessionNotFoundError: 404, permanent
- UpstreamGenerationError: 502, retryable
- InvalidSessionOperationError: 400
- HTTPException: Starlette HTTP exceptions, including unknown routes
- RequestValidationError: Pydantic validation errors
- Exception: Catch-all for unhandled exceptions (no stack traces)
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from council.api.error_model import get_error_code_for_status, make_error_response
from council.debate.errors import (
    InvalidSessionOperationError,
    SessionNotFoundError,
    UpstreamGenerationError,
)

logger = logging.getLogger(__name__)


async def session_not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unknown session id: permanent, callers should not retry."""
    assert isinstance(exc, SessionNotFoundError)

    return make_error_response(
        request,
        code="NOT_FOUND",
        message="Session not found",
        http_status=404,
        details={"session_id": exc.session_id},
    )


async def upstream_generation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generation failure: the session is unchanged and the turn may be retried."""
    assert isinstance(exc, UpstreamGenerationError)

    logger.warning(
        "Upstream generation failed for session %s (%s): %s",
        exc.session_id,
        exc.role,
        exc.cause,
    )
    return make_error_response(
        request,
        code="UPSTREAM_GENERATION_FAILED",
        message="Text generation failed",
        http_status=502,
        details={
            "session_id": exc.session_id,
            "role": exc.role,
            "retryable": exc.retryable,
        },
    )


async def invalid_session_operation_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, InvalidSessionOperationError)

    return make_error_response(
        request,
        code="INVALID_REQUEST",
        message=str(exc),
        http_status=400,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map standard HTTP exceptions to the error envelope."""
    assert isinstance(exc, HTTPException)

    code = get_error_code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map Pydantic validation errors to the error envelope.

    Only field paths and messages are exposed, not raw validation internals.
    """
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: 500 with a generic message; the exception is logged."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install every council exception handler on the app."""
    app.add_exception_handler(SessionNotFoundError, session_not_found_handler)
    app.add_exception_handler(UpstreamGenerationError, upstream_generation_error_handler)
    app.add_exception_handler(InvalidSessionOperationError, invalid_session_operation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
