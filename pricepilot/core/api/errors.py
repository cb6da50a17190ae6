"""Normalized error envelope for the PricePilot API.

Every API error follows:
    {"error": {"type": "<CODE>", "message": "<human readable>", "request_id": "<id>"}}

Stable error types:
    VALIDATION_ERROR, NOT_FOUND, NOT_CONFIGURED, REMOTE_ERROR, INTERNAL_ERROR
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse

from pricepilot.core.errors import ConfigError, RemoteCallError, ValidationError

logger = logging.getLogger("pricepilot.api")

_STATUS_TO_TYPE: Dict[int, str] = {
    400: "VALIDATION_ERROR",
    404: "NOT_FOUND",
    422: "VALIDATION_ERROR",
    501: "NOT_CONFIGURED",
    502: "REMOTE_ERROR",
    503: "NOT_CONFIGURED",
}


def make_error_envelope(
    error_type: str, message: str, request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Build the standard error envelope dict."""
    return {
        "error": {
            "type": error_type,
            "message": message,
            "request_id": request_id,
        }
    }


def _envelope(request: Request, status_code: int, error_type: str, message: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status_code,
        content=make_error_envelope(error_type, message, request_id),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert HTTPException to the normalized error envelope."""
    error_type = _STATUS_TO_TYPE.get(exc.status_code, "INTERNAL_ERROR")

    if isinstance(exc.detail, dict):
        raw = exc.detail.get("error") or exc.detail.get("message") or exc.detail
        message = raw if isinstance(raw, str) else str(raw)
    elif isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = str(exc.detail)

    return _envelope(request, exc.status_code, error_type, message)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert Pydantic validation errors to the normalized envelope."""
    errors = exc.errors()
    if errors:
        parts = []
        for err in errors:
            loc = " -> ".join(str(l) for l in err.get("loc", []))
            msg = err.get("msg", "")
            parts.append(f"{loc}: {msg}" if loc else msg)
        message = "; ".join(parts)
    else:
        message = str(exc)

    return _envelope(request, 422, "VALIDATION_ERROR", message)


async def billing_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Billing model rejected before any provider call."""
    return _envelope(request, 400, "VALIDATION_ERROR", str(exc))


async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    return _envelope(request, 503, "NOT_CONFIGURED", str(exc))


async def remote_error_handler(request: Request, exc: RemoteCallError) -> JSONResponse:
    return _envelope(request, 502, "REMOTE_ERROR", str(exc))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions -- return 500 with envelope."""
    logger.error("unhandled error on %s", request.url.path, exc_info=exc)
    return _envelope(request, 500, "INTERNAL_ERROR", "Internal server error.")
