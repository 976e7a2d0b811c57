"""
Root of the monitor's exception tree.

Every error raised on purpose by the application derives from
MonitorError. Each class carries a numeric code for log grepping and
the HTTP status the trigger surface answers with when the error
escapes a handler.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MonitorError(Exception):
    """
    Application error.

    Attributes:
        message: Text logged and, unless user_message() is overridden,
            returned to API callers
        error_code: Numeric category (1xxx core, 2xxx store,
            3xxx validation, 4xxx probes and dispatch)
        details: Structured context appended to log lines
        cause: Lower-level exception this one wraps
    """

    default_error_code: int = 1000
    http_status: int = 500

    def __init__(
        self,
        message: str = "Monitor error",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = dict(details or {})
        self.cause = cause

    def log_format(self) -> str:
        """One-line rendering for log records."""
        line = f"{self.__class__.__name__}[{self.error_code}] {self.message}"
        if self.details:
            line += f" | details={self.details}"
        if self.cause is not None:
            line += f" | cause={self.cause!r}"
        return line

    def user_message(self) -> str:
        return self.message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, code={self.error_code})"


class ConfigurationError(MonitorError):
    """
    A provider credential or required setting is absent.

    Manual callers see it as a 500; the batch runner counts the check
    as skipped and nothing is recorded.
    """

    default_error_code = 1100

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if config_key:
            self.details["config_key"] = config_key


class AuthenticationError(MonitorError):
    """Bearer token missing (401) or not the expected one (403)."""

    default_error_code = 1400
    http_status = 401

    def __init__(self, message: str = "Unauthorized", forbidden: bool = False, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if forbidden:
            self.http_status = 403


class RateLimitError(MonitorError):
    """A batch run was refused: inside the guard window or already running."""

    default_error_code = 1500
    http_status = 429

    def user_message(self) -> str:
        return "Rate limit exceeded. Try again later."
