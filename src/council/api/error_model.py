"""Shared error response builder for the council API.

Error envelope:
- code: str - machine-readable error code (e.g., "NOT_FOUND")
- message: str - human-readable error message
- details: dict | None - optional additional context
- request_id: str - request correlation ID (always present)
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

HTTP_STATUS_TO_CODE: dict[int, str] = {
    400: "INVALID_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "REQUEST_VALIDATION_FAILED",
    500: "INTERNAL_ERROR",
    502: "UPSTREAM_GENERATION_FAILED",
    503: "SERVICE_UNAVAILABLE",
}


def _get_request_id(request: Request) -> str:
    """Request id from middleware state, the incoming header, or a fresh uuid4."""
    request_id: str | None = getattr(request.state, "request_id", None)
    if request_id is not None:
        return str(request_id)

    header_id = request.headers.get("X-Request-Id")
    if header_id:
        return header_id

    return str(uuid.uuid4())


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build an error JSON response.

    Args:
        request: The FastAPI request object (for request_id extraction).
        code: Machine-readable error code.
        message: Human-readable error message.
        http_status: HTTP status code.
        details: Optional dict with additional context.

    Returns:
        JSONResponse with the error envelope and X-Request-Id header.
    """
    request_id = _get_request_id(request)

    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "details": details,
        "request_id": request_id,
    }

    response = JSONResponse(status_code=http_status, content=body)
    response.headers["X-Request-Id"] = request_id
    return response


def get_error_code_for_status(status_code: int) -> str:
    """Standard error code for an HTTP status code."""
    return HTTP_STATUS_TO_CODE.get(status_code, "ERROR")
