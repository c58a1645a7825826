# leadtrack/middleware/logging.py
from __future__ import annotations

import time
from typing import Dict, Mapping, Optional

from fastapi import Request
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from leadtrack.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

SKIP_PATHS = ("/metrics", "/api/health/live")
SENSITIVE_HEADERS = (
    "authorization",
    "cookie",
    "x-forwarded-for",
    "x-real-ip",
    "x-hubspot-signature",
    "token",
    "secret",
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response logging. Bodies, cookies and client addresses are never logged."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id: Optional[str] = getattr(request.state, "request_id", None)
        skip = request.url.path in SKIP_PATHS

        if not skip:
            logger.info(
                "request.received",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                query_params=dict(request.query_params) if request.query_params else None,
                content_length=request.headers.get("content-length", "0"),
                headers=self._filter_headers(request.headers),
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request.exception",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                response_time_ms=(time.time() - start_time) * 1000,
                exception_type=type(e).__name__,
                exception_message=str(e),
            )
            raise

        response_time = time.time() - start_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}"
        if not skip:
            self._log_response(request, response, response_time, request_id)
        return response

    def _log_response(
        self,
        request: Request,
        response: Response,
        response_time: float,
        request_id: Optional[str],
    ) -> None:
        status_code = response.status_code
        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "response_time_ms": response_time * 1000,
            "response_size": response.headers.get("content-length", "0"),
        }

        if 400 <= status_code < 500:
            log_data["error_type"] = "client_error"
        elif status_code >= 500:
            log_data["error_type"] = "server_error"

        if status_code >= 400:
            logger.warning("response.sent", **log_data)
        else:
            logger.info("response.sent", **log_data)

    @staticmethod
    def _filter_headers(headers: Mapping[str, str]) -> Dict[str, str]:
        filtered = {}
        for key, value in headers.items():
            key_lower = key.lower()
            if any(sensitive in key_lower for sensitive in SENSITIVE_HEADERS):
                filtered[key] = "[REDACTED]"
            else:
                filtered[key] = value
        return filtered
