"""Custom exceptions for Libris application."""


class LibrisError(Exception):
    """Base exception for all Libris errors."""

    pass


class ConfigurationError(LibrisError):
    """Exception raised when required configuration (e.g. the database) is missing."""

    pass


class ValidationError(LibrisError):
    """Exception raised when a record or configuration patch fails validation."""

    pass


class DuplicateError(LibrisError):
    """Exception raised when a unique constraint is violated on insert."""

    pass


class StorageError(LibrisError):
    """Exception raised when the backing store fails for any other reason."""

    pass


class NotFoundError(LibrisError):
    """Exception raised when a requested row does not exist."""

    pass


class TransientFetchError(LibrisError):
    """Exception raised when a source fetch fails after retries are exhausted."""

    pass


class FetcherRegistrationError(LibrisError):
    """Exception raised when a fetcher adapter cannot be registered."""

    pass


class InvalidTransitionError(LibrisError):
    """Exception raised when an extraction job status transition is not allowed."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition from {current} to {target}")


class PdfValidationError(LibrisError):
    """Exception raised when a downloaded file is missing, too large or not a PDF."""

    pass
