"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when order data is malformed. Never retried, shown to the user."""
    pass


class BlockedFileError(AppError):
    """Raised when a spreadsheet cannot be parsed deterministically.

    The case is not failed: the user is asked to upload a corrected file.
    """
    def __init__(
        self,
        message: str,
        code: str = "BLOCKED",
        issues: Optional[list] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error)
        self.code = code
        self.issues = issues or []


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class CaseNotFoundError(AppError):
    """Raised when an order case does not exist."""
    pass


class InvalidTransitionError(AppError):
    """Raised when a case status change is not an edge of the lifecycle graph."""
    pass


class InvalidProposalError(AppError):
    """Raised when a reviewer proposal references fields or columns outside its candidates."""
    pass


class ReviewerUnavailableError(APIClientError):
    """Raised when too few reviewers answered for the committee to adjudicate."""
    pass


class LedgerUnavailableError(APIClientError):
    """Raised when the ledger cannot be reached (connection refused, 5xx, timeout)."""
    pass


# Error types Temporal must never retry
NON_RETRYABLE_ERROR_TYPES = ["ValidationError", "BlockedFileError"]
