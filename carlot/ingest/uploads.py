from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional, Sequence

from carlot.core.errors import BatchTooLarge, UnsupportedMediaType, UploadTooLarge

__all__ = [
    "ALLOWED_MEDIA_TYPES",
    "RawUpload",
    "canonical_media_type",
    "resolve_media_type",
    "check_batch_size",
    "check_uploads",
]

ALLOWED_MEDIA_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp", "image/heic", "image/heif"})

_MEDIA_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
    "image/heic-sequence": "image/heic",
    "image/heif-sequence": "image/heif",
}

_EXTENSION_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}

_GENERIC_MEDIA_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


@dataclass(frozen=True, slots=True)
class RawUpload:
    """An unprocessed image as received from the client."""

    content: bytes
    media_type: str
    filename: str = ""

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def canonical_media_type(media_type: Optional[str]) -> Optional[str]:
    """Return the allow-listed spelling of ``media_type`` or ``None`` if it is not accepted."""
    if not media_type:
        return None
    value = media_type.split(";", 1)[0].strip().lower()
    value = _MEDIA_TYPE_ALIASES.get(value, value)
    return value if value in ALLOWED_MEDIA_TYPES else None


def resolve_media_type(content_type: Optional[str], filename: Optional[str]) -> str:
    """Determine the media type of an upload, falling back to the file extension.

    The extension is only consulted when the declared type is missing or generic;
    a declared non-image type is never overridden.

    Raises:
        UnsupportedMediaType: If neither the declared type nor the extension is allow-listed.
    """
    declared = (content_type or "").split(";", 1)[0].strip().lower()
    canonical = canonical_media_type(declared)
    if canonical:
        return canonical
    if declared in _GENERIC_MEDIA_TYPES and filename:
        by_extension = _EXTENSION_MEDIA_TYPES.get(PurePath(filename).suffix.lower())
        if by_extension:
            return by_extension
    raise UnsupportedMediaType(f"unsupported media type {content_type or 'unknown'} for {filename or 'upload'}")


def check_batch_size(count: int, max_images: int) -> None:
    if count > max_images:
        raise BatchTooLarge(f"{count} images submitted, at most {max_images} allowed per request")


def check_uploads(uploads: Sequence[RawUpload], *, max_images: int, max_bytes: int) -> None:
    """Reject a batch at the boundary before any image is decoded or stored."""
    check_batch_size(len(uploads), max_images)
    for upload in uploads:
        if canonical_media_type(upload.media_type) is None:
            raise UnsupportedMediaType(f"unsupported media type {upload.media_type} for {upload.filename or 'upload'}")
        if upload.size_bytes > max_bytes:
            raise UploadTooLarge(f"{upload.filename or 'upload'} exceeds {max_bytes} bytes")
