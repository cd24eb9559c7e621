"""Domain error codes and exceptions.

Managers raise these before touching storage; the HTTP layer maps them to
JSON error responses using ``status_code``.
"""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    STORAGE_FAILURE = "STORAGE_FAILURE"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code = ErrorCode.VALIDATION_FAILED
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    """Raised when input is missing or malformed."""


class AuthenticationError(DomainError):
    """Raised when credentials do not match a user or no one is logged in."""

    code = ErrorCode.AUTHENTICATION_FAILED
    status_code = 401


class AuthorizationError(DomainError):
    """Raised when the current user lacks the role or ownership required."""

    code = ErrorCode.PERMISSION_DENIED
    status_code = 403


class NotFoundError(DomainError):
    """Raised when a referenced record does not exist."""

    code = ErrorCode.NOT_FOUND
    status_code = 404


class ConflictError(DomainError):
    """Raised when an operation would duplicate an existing record."""

    code = ErrorCode.CONFLICT
    status_code = 409


class PersistenceError(DomainError):
    """Raised when the underlying store rejected a write."""

    code = ErrorCode.STORAGE_FAILURE
    status_code = 500
