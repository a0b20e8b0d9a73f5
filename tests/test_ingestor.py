from __future__ import annotations

import asyncio
import threading
import time

import pytest

from carlot.core.config import get_settings
from carlot.core.errors import BatchTooLarge, DecodeFailed, UnsupportedMediaType
from carlot.core.storage import Storage
from carlot.ingest.transcoder import NormalizedImage, TranscodeOutcome
from carlot.ingest.uploads import RawUpload
from carlot.services.image_ingestor import BatchIngestor
from tests.conftest import make_image


class MemoryStorage(Storage):
    def __init__(self, *, fail_writes: int = 0, taken: tuple[str, ...] = ()):
        super().__init__("/uploads")
        self.files: dict[str, bytes] = {name: b"" for name in taken}
        self.writes = 0
        self.fail_writes = fail_writes
        self.lock = threading.Lock()

    def exists(self, name):
        return name in self.files

    def read_bytes(self, name):
        return self.files[name]

    def write_bytes(self, name, payload):
        with self.lock:
            self.writes += 1
            if self.fail_writes:
                self.fail_writes -= 1
                raise OSError("disk full")
            if name in self.files:
                raise FileExistsError(name)
            self.files[name] = payload

    def delete(self, name):
        return self.files.pop(name, None) is not None


def _settings(**overrides):
    return get_settings().model_copy(update=overrides)


def _webp(width: int) -> RawUpload:
    return RawUpload(make_image(width, 40, fmt="WEBP", quality=50), "image/webp", f"{width}.webp")


def _stored(storage: MemoryStorage, references: list[str]) -> list[bytes]:
    return [storage.files[storage.name_for_reference(reference)] for reference in references]


def test_references_follow_submission_order():
    storage = MemoryStorage()
    uploads = [_webp(width) for width in (100, 200, 300, 400, 500, 600, 700)]

    references = asyncio.run(BatchIngestor(_settings(), storage).ingest(uploads))

    assert len(references) == 7
    assert all(reference.startswith("/uploads/") and reference.endswith(".webp") for reference in references)
    assert _stored(storage, references) == [upload.content for upload in uploads]


def test_undecodable_file_is_dropped_and_siblings_survive():
    storage = MemoryStorage()
    uploads = [_webp(100), _webp(200), RawUpload(b"garbage", "image/jpeg", "broken.jpg"), _webp(400)]

    references = asyncio.run(BatchIngestor(_settings(), storage).ingest(uploads))

    assert len(references) == 3
    assert _stored(storage, references) == [uploads[0].content, uploads[1].content, uploads[3].content]


def test_every_file_failing_yields_empty_result():
    storage = MemoryStorage()
    uploads = [RawUpload(b"nope", "image/png", "a.png"), RawUpload(b"nope", "image/gif", "b.gif")]

    assert asyncio.run(BatchIngestor(_settings(), storage).ingest(uploads)) == []
    assert storage.files == {}


def test_empty_batch():
    assert asyncio.run(BatchIngestor(_settings(), MemoryStorage()).ingest([])) == []


def test_batch_cap_rejects_before_any_write():
    storage = MemoryStorage()
    uploads = [_webp(100)] * 4

    with pytest.raises(BatchTooLarge):
        asyncio.run(BatchIngestor(_settings(max_images_per_batch=3), storage).ingest(uploads))

    assert storage.writes == 0


def test_unsupported_type_rejects_whole_batch():
    storage = MemoryStorage()
    uploads = [_webp(100), RawUpload(b"%PDF-1.4", "application/pdf", "brochure.pdf")]

    with pytest.raises(UnsupportedMediaType):
        asyncio.run(BatchIngestor(_settings(), storage).ingest(uploads))

    assert storage.writes == 0


def test_storage_failure_drops_only_that_file():
    storage = MemoryStorage(fail_writes=1)
    ingestor = BatchIngestor(_settings(ingest_concurrency=1), storage)

    uploads = [_webp(100), _webp(200)]

    references = asyncio.run(ingestor.ingest(uploads))

    assert len(references) == 1
    assert _stored(storage, references) == [uploads[1].content]


def test_name_collision_is_retried(monkeypatch):
    names = iter(["1-taken.webp", "1-taken.webp", "2-free.webp"])
    monkeypatch.setattr("carlot.services.image_ingestor.generate_storage_name", lambda extension: next(names))
    storage = MemoryStorage(taken=("1-taken.webp",))

    references = asyncio.run(BatchIngestor(_settings(), storage).ingest([_webp(100)]))

    assert references == ["/uploads/2-free.webp"]
    assert storage.files["1-taken.webp"] == b""


def test_name_collisions_exhaust_attempts(monkeypatch):
    monkeypatch.setattr("carlot.services.image_ingestor.generate_storage_name", lambda extension: "1-taken.webp")
    storage = MemoryStorage(taken=("1-taken.webp",))

    references = asyncio.run(BatchIngestor(_settings(storage_name_attempts=3), storage).ingest([_webp(100)]))

    assert references == []
    assert storage.writes == 3


def test_in_flight_work_never_exceeds_concurrency_limit():
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def slow_transcode(content, media_type, profile):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.02)
        with lock:
            state["active"] -= 1
        if content == b"bad":
            raise DecodeFailed("bad payload")
        return NormalizedImage(payload=content, outcome=TranscodeOutcome.copied, width=1, height=1)

    uploads = [RawUpload(bytes([index]) * 4, "image/jpeg", f"{index}.jpg") for index in range(8)]
    uploads[5] = RawUpload(b"bad", "image/jpeg", "5.jpg")
    storage = MemoryStorage()
    ingestor = BatchIngestor(_settings(ingest_concurrency=3), storage, transcode=slow_transcode)

    references = asyncio.run(ingestor.ingest(uploads))

    assert 1 <= state["peak"] <= 3
    assert _stored(storage, references) == [upload.content for index, upload in enumerate(uploads) if index != 5]
