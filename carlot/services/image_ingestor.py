from __future__ import annotations

import asyncio
from typing import Callable, Optional, Sequence

from carlot.core.config import Settings
from carlot.core.errors import DecodeFailed
from carlot.core.logging import get_logger
from carlot.core.storage import Storage
from carlot.ingest.naming import content_digest, generate_storage_name
from carlot.ingest.transcoder import ImageProfile, NormalizedImage, normalize
from carlot.ingest.uploads import RawUpload, check_uploads

Transcode = Callable[[bytes, str, ImageProfile], NormalizedImage]


class BatchIngestor:
    """Turns an ordered batch of uploads into ordered public references of stored images.

    Uploads run in consecutive groups of ``settings.ingest_concurrency``; a group must
    finish before the next one starts. A file that cannot be decoded or stored is
    logged and left out of the result instead of failing the batch.
    """

    def __init__(self, settings: Settings, storage: Storage, *, transcode: Transcode = normalize):
        self.settings = settings
        self.storage = storage
        self.transcode = transcode
        self.profile = settings.image_profile
        self.logger = get_logger(component="image_ingestor")

    async def ingest(self, uploads: Sequence[RawUpload], *, car_id: Optional[str] = None) -> list[str]:
        check_uploads(
            uploads,
            max_images=self.settings.max_images_per_batch,
            max_bytes=self.settings.max_image_bytes,
        )
        if not uploads:
            return []

        logger = self.logger.bind(car_id=car_id, submitted=len(uploads))
        step = self.settings.ingest_concurrency
        references: list[str] = []
        for start in range(0, len(uploads), step):
            group = uploads[start : start + step]
            results = await asyncio.gather(
                *(self._ingest_one(upload, start + offset, logger) for offset, upload in enumerate(group))
            )
            references.extend(reference for reference in results if reference is not None)

        logger.info("image_batch_ingested", stored=len(references), dropped=len(uploads) - len(references))
        return references

    async def _ingest_one(self, upload: RawUpload, index: int, logger) -> Optional[str]:
        try:
            image = await asyncio.to_thread(self.transcode, upload.content, upload.media_type, self.profile)
        except DecodeFailed as exc:
            logger.warning("image_dropped", index=index, filename=upload.filename, reason="decode_failed", error=str(exc))
            return None

        try:
            name = await asyncio.to_thread(self._store, image.payload)
        except OSError as exc:
            logger.warning("image_dropped", index=index, filename=upload.filename, reason="storage_failed", error=str(exc))
            return None

        logger.debug(
            "image_ingested",
            index=index,
            filename=upload.filename,
            name=name,
            outcome=image.outcome.value,
            width=image.width,
            height=image.height,
            size_bytes=len(image.payload),
            sha256=content_digest(image.payload),
        )
        return self.storage.public_reference(name)

    def _store(self, payload: bytes) -> str:
        attempts = self.settings.storage_name_attempts
        for attempt in range(1, attempts + 1):
            name = generate_storage_name(self.profile.extension)
            try:
                self.storage.write_bytes(name, payload)
            except FileExistsError:
                self.logger.info("storage_name_collision", name=name, attempt=attempt)
                continue
            return name
        raise FileExistsError(f"no free storage name after {attempts} attempts")


__all__ = ["BatchIngestor", "Transcode"]
