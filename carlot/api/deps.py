from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carlot.core.auth import AuthContext, require_admin
from carlot.core.config import Settings, get_settings
from carlot.core.storage import Storage
from carlot.services.catalog_service import CatalogService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    return storage


def get_app_settings() -> Settings:
    return get_settings()


async def get_catalog_service(
    session: AsyncSession = Depends(get_session),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[CatalogService]:
    service = CatalogService(settings, storage, session)
    yield service


CatalogDependency = Annotated[CatalogService, Depends(get_catalog_service)]
AdminDependency = Annotated[AuthContext, Depends(require_admin)]


__all__ = [
    "get_session",
    "get_storage",
    "get_app_settings",
    "get_catalog_service",
    "CatalogDependency",
    "AdminDependency",
]
