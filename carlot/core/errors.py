from __future__ import annotations


class CatalogError(Exception):
    """Base class for failures raised by the catalog and image pipeline."""

    code = "catalog_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(CatalogError):
    """Caller-fixable input problem. Nothing has been written when it is raised."""

    code = "validation_failed"


class UnsupportedMediaType(ValidationError):
    code = "unsupported_media_type"


class BatchTooLarge(ValidationError):
    code = "too_many_images"


class UploadTooLarge(ValidationError):
    code = "image_too_large"


class DecodeFailed(CatalogError):
    """The bytes of one upload could not be read as an image of its declared type."""

    code = "decode_failed"


class NotFound(CatalogError):
    code = "car_not_found"


class ConcurrentModification(CatalogError):
    code = "version_conflict"


__all__ = [
    "CatalogError",
    "ValidationError",
    "UnsupportedMediaType",
    "BatchTooLarge",
    "UploadTooLarge",
    "DecodeFailed",
    "NotFound",
    "ConcurrentModification",
]
