"""Exception types raised by the catalog services."""

from __future__ import annotations


class CatalogError(Exception):
    """Base error carrying the HTTP status reported to API callers."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CatalogError):
    status_code = 400
    default_message = "Invalid catalog record"


class MediaRequired(CatalogError):
    status_code = 400
    default_message = "Movie file is required"


class InvalidCategory(CatalogError):
    status_code = 400
    default_message = (
        "Invalid category: must be movie, tv-series, music, or animation"
    )


class InvalidField(CatalogError):
    status_code = 400
    default_message = "Invalid file field"


class UnsupportedMediaType(CatalogError):
    # The admin UI reports every rejected upload as a bad request.
    status_code = 400
    default_message = "Unsupported file type"


class PayloadTooLarge(CatalogError):
    status_code = 413
    default_message = "File upload error: File too large"


class TooManyParts(CatalogError):
    status_code = 400
    default_message = "File upload error: Too many parts"


class NotFound(CatalogError):
    status_code = 404
    default_message = "Movie not found"


class Unauthorized(CatalogError):
    status_code = 401
    default_message = "Unauthorized: Invalid token"


class Forbidden(CatalogError):
    status_code = 403
    default_message = "Forbidden"


class StoreCorrupt(CatalogError):
    status_code = 500
    default_message = "Catalog file is corrupt"
