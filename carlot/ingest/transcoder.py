"""Single-image normalization: keep compliant WEBP files as-is, re-encode everything else."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError, features
from pillow_heif import register_heif_opener

from carlot.core.errors import DecodeFailed, UnsupportedMediaType
from carlot.ingest.uploads import canonical_media_type

register_heif_opener()

TARGET_MEDIA_TYPE = "image/webp"
TARGET_FORMAT = "WEBP"
TARGET_EXTENSION = ".webp"

# Pillow format names each accepted media type may decode as.
DECODABLE_FORMATS: dict[str, frozenset[str]] = {
    "image/jpeg": frozenset({"JPEG", "MPO"}),
    "image/png": frozenset({"PNG"}),
    "image/gif": frozenset({"GIF"}),
    "image/webp": frozenset({"WEBP"}),
    "image/heic": frozenset({"HEIF"}),
    "image/heif": frozenset({"HEIF"}),
}


class TranscodeOutcome(str, enum.Enum):
    copied = "copied"
    transcoded = "transcoded"


@dataclass(frozen=True, slots=True)
class ImageProfile:
    max_width: int = 1400
    quality: int = 75
    skip_max_bytes: int = 300_000
    skip_max_width: int = 1400
    max_pixels: int | None = 80_000_000
    extension: str = TARGET_EXTENSION


@dataclass(slots=True)
class NormalizedImage:
    payload: bytes
    outcome: TranscodeOutcome
    width: int
    height: int


def normalize(raw: bytes, media_type: str, profile: ImageProfile | None = None) -> NormalizedImage:
    """Return storage-ready WEBP bytes for one uploaded image.

    Args:
        raw: The uploaded bytes.
        media_type: The declared media type (must be allow-listed).
        profile: Target width, quality and skip-path thresholds.

    Returns:
        The normalized image and whether it was copied or re-encoded.

    Raises:
        UnsupportedMediaType: If the media type is not allow-listed.
        DecodeFailed: If the bytes are not an image of the declared type.
    """
    profile = profile or ImageProfile()
    canonical = canonical_media_type(media_type)
    if canonical is None:
        raise UnsupportedMediaType(f"unsupported media type: {media_type}")
    if not raw:
        raise DecodeFailed("empty upload")

    try:
        with Image.open(BytesIO(raw)) as image:
            if image.format not in DECODABLE_FORMATS[canonical]:
                raise DecodeFailed(f"declared {canonical} but decoded {image.format}")
            width, height = image.size
            _check_pixel_budget(width, height, profile)
            image.load()

            if _can_skip(raw, canonical, image.format, width, profile):
                return NormalizedImage(payload=raw, outcome=TranscodeOutcome.copied, width=width, height=height)

            return _reencode(image, profile)
    except DecodeFailed:
        raise
    except (UnidentifiedImageError, OSError, EOFError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise DecodeFailed(str(exc) or type(exc).__name__) from exc


def _can_skip(raw: bytes, media_type: str, image_format: str | None, width: int, profile: ImageProfile) -> bool:
    return (
        media_type == TARGET_MEDIA_TYPE
        and image_format == TARGET_FORMAT
        and len(raw) <= profile.skip_max_bytes
        and width <= profile.skip_max_width
    )


def _check_pixel_budget(width: int, height: int, profile: ImageProfile) -> None:
    if profile.max_pixels is not None and width * height > profile.max_pixels:
        raise DecodeFailed(f"image of {width}x{height} exceeds pixel budget")


def _reencode(image: Image.Image, profile: ImageProfile) -> NormalizedImage:
    oriented = ImageOps.exif_transpose(image)
    flattened = _flatten_mode(oriented)
    resized = downscale_to_width(flattened, profile.max_width)

    out = BytesIO()
    resized.save(out, format=TARGET_FORMAT, quality=profile.quality)
    width, height = resized.size
    return NormalizedImage(payload=out.getvalue(), outcome=TranscodeOutcome.transcoded, width=width, height=height)


def _flatten_mode(image: Image.Image) -> Image.Image:
    if image.mode in {"RGB", "RGBA"}:
        return image
    has_alpha = "A" in image.getbands() or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def codec_support() -> dict[str, bool]:
    """Report which input decoders and the WEBP encoder are available in this Pillow build."""
    Image.init()
    return {
        "jpeg": "JPEG" in Image.OPEN and bool(features.check_codec("jpg")),
        "png": "PNG" in Image.OPEN and bool(features.check_codec("zlib")),
        "gif": "GIF" in Image.OPEN,
        "webp": "WEBP" in Image.SAVE and bool(features.check_module("webp")),
        "heif": "HEIF" in Image.OPEN,
    }


def downscale_to_width(image: Image.Image, max_width: int) -> Image.Image:
    """Downscale to ``max_width`` preserving aspect ratio. Narrower images are returned untouched."""
    width, height = image.size
    if width <= max_width:
        return image
    target_height = max(1, int(round(height * max_width / float(width))))
    return image.resize((max_width, target_height), Image.Resampling.LANCZOS)


__all__ = [
    "ImageProfile",
    "NormalizedImage",
    "TranscodeOutcome",
    "TARGET_MEDIA_TYPE",
    "TARGET_EXTENSION",
    "normalize",
    "codec_support",
    "downscale_to_width",
]
