"""Exception hierarchy for the domain health monitor."""

from exceptions.base import (
    MonitorError,
    ConfigurationError,
    AuthenticationError,
    RateLimitError
)
from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseNotFoundError,
    PersistenceError
)
from exceptions.validation import (
    ValidationException,
    InvalidURLError,
    InvalidDomainError,
    MissingFieldError,
    InvalidFormatError
)
from exceptions.monitoring import (
    MonitoringException,
    ProbeError,
    DispatchError
)

__all__ = [
    "MonitorError",
    "ConfigurationError",
    "AuthenticationError",
    "RateLimitError",
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseNotFoundError",
    "PersistenceError",
    "ValidationException",
    "InvalidURLError",
    "InvalidDomainError",
    "MissingFieldError",
    "InvalidFormatError",
    "MonitoringException",
    "ProbeError",
    "DispatchError",
]
