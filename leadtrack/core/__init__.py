# leadtrack/core/__init__.py
"""
Core package for configuration, logging, and shared errors.
"""

from leadtrack.core.config import Settings, settings
from leadtrack.core.logging import configure_structlog, get_structlog_logger

__all__ = [
    "Settings",
    "settings",
    "configure_structlog",
    "get_structlog_logger",
]
