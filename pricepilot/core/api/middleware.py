"""Request-ID middleware and request logging for the PricePilot API.

Adds X-Request-ID to every response, echoing the caller's header or
generating a short id. Logs one line per request with the request id,
method, path, status and elapsed time. Request bodies are never logged,
so uploaded pricing data stays out of the logs.

``log_format="json"`` (PRICEPILOT_LOG_FORMAT=json) emits JSON lines.
"""

from __future__ import annotations

import datetime
import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger("pricepilot.api")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id and log one line per request."""

    def __init__(self, app: ASGIApp, log_format: str = "text") -> None:
        super().__init__(app)
        self.log_format = log_format

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        response.headers["x-request-id"] = request_id

        if self.log_format == "json":
            logger.info(json.dumps({
                "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "elapsed_ms": elapsed_ms,
            }, separators=(",", ":")))
        else:
            logger.info(
                "%s %s -> %d (%dms) request_id=%s",
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
                request_id,
            )
        return response
