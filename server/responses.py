# server/responses.py
"""Error envelopes and CORS headers shared by every endpoint."""

from __future__ import annotations

import math
from typing import Any

import structlog
from core.error_classifier import error_type_for
from core.errors import (
    ERROR_STATUS,
    AllAttemptsFailed,
    ErrorType,
    FineFormatError,
    RateLimited,
)
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from models import ErrorEnvelope

logger = structlog.get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def error_response(
    message: str,
    error_type: ErrorType,
    status_code: int | None = None,
    details: str | None = None,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorEnvelope(error=message, type=error_type.value, details=details)
    return JSONResponse(
        {**body.to_body(), **(extra or {})},
        status_code=status_code or ERROR_STATUS[error_type],
        headers={**CORS_HEADERS, **(headers or {})},
    )


async def fine_format_error_handler(
    request: Request, exc: FineFormatError
) -> JSONResponse:
    error_type = error_type_for(exc)
    if isinstance(exc, AllAttemptsFailed):
        status_code = ERROR_STATUS[error_type]
    else:
        status_code = exc.http_status
    body = ErrorEnvelope.model_validate(
        {**exc.to_envelope(), "type": error_type.value}
    ).to_body()
    headers = dict(CORS_HEADERS)
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request to %s failed: %s",
        request.url.path,
        exc.message,
        error_type=error_type.value,
        status=status_code,
    )
    return JSONResponse(body, status_code=status_code, headers=headers)


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 405:
        return error_response("Method not allowed", ErrorType.METHOD_NOT_ALLOWED)
    if exc.status_code == 404:
        return error_response("Not found", ErrorType.INVALID_REQUEST, 404)
    return error_response(
        str(exc.detail), ErrorType.UNKNOWN_ERROR, status_code=exc.status_code
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error on %s: %s", request.url.path, exc, exc_info=True
    )
    return error_response(
        "Internal server error", ErrorType.UNKNOWN_ERROR, details=str(exc)
    )
