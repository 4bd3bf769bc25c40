"""Custom exceptions for the database builder service."""


class BuilderError(Exception):
    """Base exception for all database-builder errors."""


class DatabaseNotFoundError(BuilderError):
    """Raised when a database build does not exist (or is not owned by the caller)."""


class InsufficientCreditsError(BuilderError):
    """Raised when a user lacks the contact credits a build requires."""


class ProviderError(BuilderError):
    """Raised when the places-search provider cannot be reached or answers badly.

    Always transient from the build's point of view: the tick is retried.
    """


class StorageError(BuilderError):
    """Raised when a blob storage operation fails."""


class ExportError(BuilderError):
    """Raised when an export file cannot be generated."""


class QueryError(BuilderError):
    """Raised when a database query fails unexpectedly."""
