"""
Record-store errors.

Store methods never leak SQLAlchemy exceptions: everything raised
inside a session is re-raised as PersistenceError with the original
attached as ``cause``.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from exceptions.base import MonitorError


class DatabaseException(MonitorError):
    """Base class for store failures."""

    default_error_code = 2000

    def __init__(self, message: str, table: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if table:
            self.details["table"] = table


class DatabaseConnectionError(DatabaseException):
    """The engine could not be created or the schema could not be applied."""

    default_error_code = 2001

    def __init__(
        self,
        message: str = "Unable to connect to database",
        url: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        if url:
            # user:password@ stripped
            self.details["url"] = re.sub(r"//[^@/]*@", "//***@", url)

    def user_message(self) -> str:
        return "Database unavailable"


class DatabaseNotFoundError(DatabaseException):
    """A lookup by id matched no row."""

    default_error_code = 2003
    http_status = 404

    def __init__(
        self,
        message: str = "Record not found",
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        if entity_type:
            self.details["entity_type"] = entity_type
        if entity_id is not None:
            self.details["entity_id"] = str(entity_id)

    def user_message(self) -> str:
        return f"{self.details.get('entity_type', 'Record')} not found"


class PersistenceError(DatabaseException):
    """
    A read or write failed.

    Fails the single check that needed the store; the batch carries on
    with the next check.
    """

    default_error_code = 2100

    def __init__(
        self,
        message: str = "Failed to persist record",
        operation: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        if operation:
            self.details["operation"] = operation

    def user_message(self) -> str:
        return f"Database error: {self.message}"
