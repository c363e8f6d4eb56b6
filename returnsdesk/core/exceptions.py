"""Exception hierarchy for the returns desk."""
from typing import Any, Dict, Optional


class ReturnsDeskError(Exception):
    """Base class for all returns desk errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ReturnsServiceError(ReturnsDeskError):
    """Transport-level failure talking to the upstream returns service."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        super().__init__(message, details)


class FetchError(ReturnsDeskError):
    """A page could not be fetched after all retry attempts."""

    def __init__(self, key: str, attempts: int, cause: Optional[BaseException] = None):
        self.key = key
        self.attempts = attempts
        self.cause = cause
        if cause is not None:
            reason = getattr(cause, "message", None) or str(cause)
        else:
            reason = "unknown error"
        super().__init__(
            f"Failed to load returns after {attempts} attempt(s): {reason}",
            details={"key": key, "attempts": attempts},
        )


class StorageError(ReturnsDeskError):
    """A durable storage backend failed to read or write a value."""
