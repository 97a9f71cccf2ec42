"""
Custom Exception Classes
========================

Application-specific exceptions for proper error handling.

Every error carries a human-readable ``message`` and a ``details`` dict.
Errors that originate from a remote response also keep the raw payload so
the UI can show it for troubleshooting.
"""

from typing import Any


class DataCleanerError(Exception):
    """Base exception for the data cleaner service."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def raw_payload(self) -> str | None:
        """Raw diagnostic payload, if the error has one."""
        return None


class ConfigurationError(DataCleanerError):
    """Raised when a credential or required mapping is missing or invalid."""

    pass


class RemoteError(DataCleanerError):
    """
    Raised when the remote LLM call fails.

    Covers network failures, timeouts and non-2xx responses. ``status_code``
    is None when no response was received.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        raw_body: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.raw_body = raw_body
        self.details.setdefault("status_code", status_code)

    @property
    def raw_payload(self) -> str | None:
        return self.raw_body


class ParseError(DataCleanerError):
    """Raised when a response cannot be coerced into the expected schema."""

    def __init__(
        self,
        message: str,
        raw_text: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.raw_text = raw_text

    @property
    def raw_payload(self) -> str | None:
        return self.raw_text


class ValidationError(DataCleanerError):
    """Raised when input validation fails (empty or unreadable import, bad edit)."""

    pass


class OperationCancelled(DataCleanerError):
    """Raised when a remote operation is cancelled before it completes."""

    pass


class IllegalTransitionError(DataCleanerError):
    """Raised on a verification state transition whose precondition does not hold."""

    pass


class RowNotFoundError(DataCleanerError):
    """Raised when an internal row id does not exist in the table."""

    pass


class SecurityError(DataCleanerError):
    """
    Raised when a security violation is detected.

    Used for path traversal prevention on file import.
    """

    pass


class FileSizeError(DataCleanerError):
    """Raised when a file exceeds the maximum allowed size."""

    pass


class StorageError(DataCleanerError):
    """Raised when the persistent store cannot be read or written."""

    pass


class OperationInProgressError(DataCleanerError):
    """Raised when a remote operation is requested while another one is running."""

    pass
