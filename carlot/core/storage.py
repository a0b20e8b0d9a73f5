from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from .config import Settings


class Storage(ABC):
    """Append/delete-by-name byte store for normalized images. Names are never overwritten."""

    def __init__(self, public_prefix: str = "/uploads"):
        self.public_prefix = "/" + public_prefix.strip("/") if public_prefix.strip("/") else ""

    @abstractmethod
    def exists(self, name: str) -> bool: ...

    @abstractmethod
    def read_bytes(self, name: str) -> bytes: ...

    @abstractmethod
    def write_bytes(self, name: str, payload: bytes) -> None:
        """Create ``name``. Raises ``FileExistsError`` if the name is taken."""

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Remove ``name``. Returns ``False`` when nothing was stored under it."""

    def public_reference(self, name: str) -> str:
        return f"{self.public_prefix}/{_validate_name(name)}"

    def name_for_reference(self, reference: str) -> str:
        prefix = f"{self.public_prefix}/"
        if not reference.startswith(prefix):
            raise ValueError(f"reference outside asset store: {reference}")
        return _validate_name(reference[len(prefix):])


def _validate_name(name: str) -> str:
    if not name or name in {".", ".."} or "/" in name or "\\" in name:
        raise ValueError(f"invalid storage name: {name!r}")
    return name


class LocalStorage(Storage):
    """Filesystem-backed asset store; one flat directory of files."""

    def __init__(self, base_path: Path, public_prefix: str = "/uploads"):
        super().__init__(public_prefix)
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, name: str) -> Path:
        return self.base_path / _validate_name(name)

    def exists(self, name: str) -> bool:
        return self._resolve(name).exists()

    def read_bytes(self, name: str) -> bytes:
        return self._resolve(name).read_bytes()

    def write_bytes(self, name: str, payload: bytes) -> None:
        path = self._resolve(name)
        try:
            with path.open("xb") as handle:
                handle.write(payload)
        except FileExistsError:
            raise
        except OSError:
            path.unlink(missing_ok=True)
            raise

    def delete(self, name: str) -> bool:
        path = self._resolve(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=Path(settings.upload_root), public_prefix=settings.public_prefix)
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "get_storage",
]
