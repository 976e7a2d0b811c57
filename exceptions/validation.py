"""
Input validation errors.

All map to HTTP 400. ``details`` names the offending field and a
truncated copy of the value so log lines stay short.
"""

from __future__ import annotations

from typing import Any, Optional

from exceptions.base import MonitorError


_MAX_VALUE_CHARS = 100


class ValidationException(MonitorError):
    """Base class for rejected input."""

    default_error_code = 3000
    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        if field:
            self.details["field"] = field
        if value is not None:
            text = str(value)
            if len(text) > _MAX_VALUE_CHARS:
                text = text[:_MAX_VALUE_CHARS] + "..."
            self.details["value"] = text


class InvalidURLError(ValidationException):
    """Uptime URL is not absolute http(s)."""

    default_error_code = 3001

    _HINTS = {
        "no_scheme": "URL must start with http:// or https://",
        "no_host": "URL must contain a host",
    }

    def __init__(
        self,
        message: str = "Invalid URL format",
        url: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field="url", value=url, **kwargs)
        if reason:
            self.details["reason"] = reason

    def user_message(self) -> str:
        return self._HINTS.get(
            self.details.get("reason", ""),
            "Please provide a valid URL (e.g., https://example.com)",
        )


class InvalidDomainError(ValidationException):
    default_error_code = 3002

    def __init__(self, message: str = "Invalid domain name", domain: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, field="domain", value=domain, **kwargs)


class MissingFieldError(ValidationException):
    """A required request body field is absent or empty."""

    default_error_code = 3004

    def __init__(self, message: str = "Missing required fields", field: str = "unknown", **kwargs: Any) -> None:
        super().__init__(message, field=field, **kwargs)


class InvalidFormatError(ValidationException):
    """Value present but malformed (phone, email, preference flag)."""

    default_error_code = 3006

    def __init__(
        self,
        message: str = "Invalid format",
        field: Optional[str] = None,
        expected_format: Optional[str] = None,
        example: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, field=field, **kwargs)
        if expected_format:
            self.details["expected_format"] = expected_format
        if example:
            self.details["example"] = example
