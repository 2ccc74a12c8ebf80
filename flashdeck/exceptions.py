from typing import Optional

from .constants import OWNERSHIP_ERROR_MESSAGE


class FlashdeckError(Exception):
    """Base exception for all flashdeck errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class ValidationError(FlashdeckError):
    """Raised for malformed input, before anything touches storage."""

    pass


class OwnershipError(FlashdeckError):
    """
    Raised when the acting identity does not own the referenced deck.

    Also raised when the deck does not exist at all, so callers can never
    learn whether another user's deck exists.
    """

    def __init__(
        self,
        message: str = OWNERSHIP_ERROR_MESSAGE,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message, original_exception=original_exception)


class TransientStorageError(FlashdeckError):
    """Storage is unavailable. Surfaced to the caller, never retried."""

    pass


class CommitFailure(FlashdeckError):
    """One or more sub-requests of a bulk commit failed."""

    pass


class CommitInProgressError(FlashdeckError):
    """Raised when a commit is requested while another is still in flight."""

    pass


class DeckLimitError(FlashdeckError):
    """Raised when the owner's plan does not allow another deck."""

    pass


class EntitlementError(FlashdeckError):
    """Raised when the owner's plan does not grant a capability."""

    pass


class GenerationError(FlashdeckError):
    """Raised when the flashcard generation service fails."""

    pass


class DatabaseError(FlashdeckError):
    """Base exception for database-related errors."""

    pass


class DatabaseConnectionError(DatabaseError, TransientStorageError):
    """Raised for errors connecting to the database."""

    pass


class SchemaInitializationError(DatabaseError):
    """Raised for errors during schema setup."""

    pass


class DeckOperationError(DatabaseError):
    """Raised for errors during deck operations (CRUD)."""

    pass


class CardOperationError(DatabaseError):
    """Raised for errors during card operations (CRUD)."""

    pass


class MarshallingError(DatabaseError):
    """Indicates an error during data conversion between application models
    and DB format."""

    pass
