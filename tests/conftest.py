import asyncio
from io import BytesIO

import jwt
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from carlot.core.config import get_settings
from carlot.core.db import create_engine, create_schema, drop_schema
from carlot.main import create_app


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default carlot environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return
    db_path = tmp_path / "carlot_test.db"
    upload_root = tmp_path / "uploads"

    monkeypatch.setenv("CARLOT_ENV", "test")
    monkeypatch.setenv("CARLOT_LOG_LEVEL", "debug")
    monkeypatch.setenv("CARLOT_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("CARLOT_UPLOAD_ROOT", str(upload_root))
    monkeypatch.setenv("CARLOT_STORAGE_BACKEND", "local")
    monkeypatch.setenv("CARLOT_JWT_SECRET", "test-secret")
    monkeypatch.setenv("CARLOT_JWT_ISSUER", "carlot-test")
    monkeypatch.setenv("CARLOT_JWT_AUDIENCE", "carlot")

    get_settings.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    asyncio.run(create_schema(engine))

    yield

    async def _teardown() -> None:
        await drop_schema(engine)
        await engine.dispose()

    asyncio.run(_teardown())
    get_settings.cache_clear()


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def build_token(*, scopes: list[str] | None = None, user_id: str | None = None) -> str:
    payload: dict[str, object] = {"iss": "carlot-test", "aud": "carlot"}
    if scopes:
        payload["scopes"] = scopes
    if user_id:
        payload["sub"] = user_id
    return jwt.encode(payload, "test-secret", algorithm="HS256")


@pytest.fixture()
def viewer_headers() -> dict[str, str]:
    token = build_token(user_id="viewer-1")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    token = build_token(scopes=["admin"], user_id="dealer-1")
    return {"Authorization": f"Bearer {token}"}


def make_image(
    width: int,
    height: int,
    *,
    fmt: str = "JPEG",
    color: tuple[int, int, int] = (200, 30, 30),
    mode: str = "RGB",
    **save_kwargs,
) -> bytes:
    """Encode a solid-colour test image."""
    fill = color + (255,) if mode == "RGBA" else color
    image = Image.new(mode, (width, height), fill)
    out = BytesIO()
    image.save(out, format=fmt, **save_kwargs)
    return out.getvalue()


def image_size(payload: bytes) -> tuple[int, int]:
    with Image.open(BytesIO(payload)) as image:
        return image.size


def image_format(payload: bytes) -> str | None:
    with Image.open(BytesIO(payload)) as image:
        return image.format
