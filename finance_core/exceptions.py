"""Domain-specific exceptions for the finance tracker core services."""


class FinanceError(Exception):
    """Base class carrying a stable machine-readable error code."""

    code = "UNKNOWN_ERROR"


class ValidationError(FinanceError, ValueError):
    """Raised when provided data does not meet validation requirements."""

    code = "INVALID_INPUT"


class RecordNotFoundError(FinanceError, LookupError):
    """Raised when a record cannot be located in its collection."""

    code = "NOT_FOUND"


class PermissionDeniedError(FinanceError):
    """Raised when a record belongs to another user."""

    code = "PERMISSION_DENIED"


class UnauthenticatedError(FinanceError):
    """Raised when an operation is attempted without a user id."""

    code = "UNAUTHENTICATED"


class PersistenceError(FinanceError, IOError):
    """Raised when the persistence layer encounters unrecoverable issues."""

    code = "STORAGE_ERROR"
