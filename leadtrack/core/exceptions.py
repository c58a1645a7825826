from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class BaseAPIException(Exception):
    """Base exception for all API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_content(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            content["details"] = self.details
        return content


class ValidationError(BaseAPIException):
    """Request rejected before any processing."""
    def __init__(self, message: str = "Validation error", **kwargs):
        super().__init__(message, status_code=400, **kwargs)


class MissingFieldsError(ValidationError):
    """Required submission fields are absent or blank."""

    def __init__(self, missing: Iterable[str], required: Iterable[str]):
        self.missing = list(missing)
        super().__init__(
            f"Missing required fields: {', '.join(required)}",
            code="missing_required_fields",
            details={"missing": self.missing},
        )


class AuthenticationError(BaseAPIException):
    """Authentication failed."""
    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(message, status_code=401, **kwargs)


class ExternalServiceError(BaseAPIException):
    """External service error."""
    def __init__(self, message: str = "External service error", **kwargs):
        super().__init__(message, status_code=502, **kwargs)


class ServiceUnavailableError(BaseAPIException):
    """Service unavailable."""
    def __init__(self, message: str = "Service unavailable", **kwargs):
        super().__init__(message, status_code=503, **kwargs)
