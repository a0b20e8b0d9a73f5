from __future__ import annotations

import secrets
import time
from hashlib import sha256
from typing import Callable, Optional

__all__ = [
    "generate_storage_name",
    "content_digest",
]


def generate_storage_name(
    extension: str,
    *,
    clock: Optional[Callable[[], float]] = None,
    token_bytes: int = 6,
) -> str:
    """Return a fresh storage name of the form ``<unix-ms>-<random hex><extension>``.

    Args:
        extension: The file extension including the leading dot.
        clock: Source of the current time in seconds, for tests.
        token_bytes: Number of random bytes in the name.

    Returns:
        The generated name. Callers still guard against collisions when writing.
    """
    now = (clock or time.time)()
    millis = int(now * 1000)
    return f"{millis}-{secrets.token_hex(token_bytes)}{extension}"


def content_digest(payload: bytes) -> str:
    """Return the hexadecimal SHA256 digest of ``payload``.

    Args:
        payload: The stored bytes.

    Returns:
        The hexadecimal SHA256 digest.
    """
    return sha256(payload).hexdigest()
