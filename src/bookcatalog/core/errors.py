"""Error types shared by the upload gateway, the stores and the client."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for every error raised by bookcatalog."""


class ValidationError(CatalogError):
    """Bad input. Always user-actionable and never retried automatically.

    ``reason`` is the machine-readable code returned to HTTP callers.
    """

    reason = "ValidationError"
    default_message = "Invalid input"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingFile(ValidationError):
    reason = "MissingFile"
    default_message = "No file provided"


class InvalidType(ValidationError):
    reason = "InvalidType"
    default_message = "File must be an image"


class TooLarge(ValidationError):
    reason = "TooLarge"
    default_message = "File size must be less than 5MB"


class IncompleteBook(ValidationError):
    reason = "IncompleteBook"
    default_message = "Please fill in all required fields"


class InvalidField(ValidationError):
    reason = "InvalidField"


VALIDATION_ERRORS: dict[str, type[ValidationError]] = {
    cls.reason: cls
    for cls in (MissingFile, InvalidType, TooLarge, IncompleteBook, InvalidField)
}


def validation_error(reason: str, message: str | None = None) -> ValidationError:
    """Rebuild a ValidationError from a reason code received over the wire."""
    cls = VALIDATION_ERRORS.get(reason, ValidationError)
    return cls(message)


class TransientIOError(CatalogError):
    """Network or store failure. Surfaced to the user, who may retry by hand."""


class UploadTimeout(TransientIOError):
    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        super().__init__(f"Upload timed out after {seconds:g}s")


class InternalError(CatalogError):
    """Unexpected failure. Detail is logged; callers only see a generic message."""


class BookNotFound(CatalogError):
    def __init__(self, book_id: str) -> None:
        self.book_id = book_id
        super().__init__(f"Book not found: {book_id}")


class DuplicateBook(CatalogError):
    def __init__(self, book_id: str) -> None:
        self.book_id = book_id
        super().__init__(f"Book already exists: {book_id}")
