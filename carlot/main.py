from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from carlot.api.v1 import get_api_router
from carlot.core.config import get_settings
from carlot.core.db import create_engine, create_schema, create_session_factory
from carlot.core.logging import configure_logging, get_logger, parse_level
from carlot.core.storage import get_storage


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=parse_level(settings.log_level), json_logs=settings.log_format == "json")
    logger = get_logger(component="app")
    storage = get_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.storage = storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        if settings.create_schema_on_startup:
            await create_schema(engine)
        logger.info("app_started", environment=settings.environment, upload_root=str(settings.upload_root))
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.include_router(get_api_router())
    app.mount(settings.public_prefix, StaticFiles(directory=Path(settings.upload_root)), name="uploads")
    return app


__all__ = ["create_app"]
