# leadtrack/middleware/__init__.py
"""
HTTP middleware: request ids and request/response logging.
"""

from leadtrack.middleware.logging import LoggingMiddleware
from leadtrack.middleware.request_id import RequestIdMiddleware

__all__ = [
    "LoggingMiddleware",
    "RequestIdMiddleware",
]
