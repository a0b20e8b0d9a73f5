from __future__ import annotations

import asyncio
import math
from typing import Any, Iterable, Optional, Sequence
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from carlot.core.config import Settings
from carlot.core.errors import ConcurrentModification, NotFound
from carlot.core.logging import get_logger
from carlot.core.storage import Storage
from carlot.db.models import Car
from carlot.ingest.reconcile import drop_references, reconcile_images
from carlot.ingest.uploads import RawUpload, check_uploads
from carlot.schemas import SCALAR_FIELDS, CarCreate, CarUpdate
from carlot.services.image_ingestor import BatchIngestor

SORT_OPTIONS = {
    "price-asc": Car.price.asc(),
    "price-desc": Car.price.desc(),
    "year-asc": Car.year.asc(),
    "year-desc": Car.year.desc(),
}


class CatalogService:
    """Owns the lifecycle of cars and of the image references they list."""

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        session: AsyncSession,
        *,
        ingestor: Optional[BatchIngestor] = None,
    ):
        self.settings = settings
        self.storage = storage
        self.session = session
        self.ingestor = ingestor or BatchIngestor(settings, storage)
        self.logger = get_logger(component="catalog_service")

    async def create_car(self, fields: CarCreate, uploads: Sequence[RawUpload] = ()) -> Car:
        self._check_uploads(uploads)
        car_id = uuid4().hex
        images = await self.ingestor.ingest(uploads, car_id=car_id)

        car = Car(car_id=car_id, images=images, **fields.model_dump())
        self.session.add(car)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            await self.remove_assets(images, car_id=car_id)
            raise

        self.logger.info("car_created", car_id=car_id, submitted_images=len(uploads), stored_images=len(images))
        return car

    async def edit_car(
        self,
        car_id: str,
        patch: CarUpdate,
        *,
        image_order: Optional[Sequence[str]] = None,
        uploads: Sequence[RawUpload] = (),
        remove_images: Iterable[str] = (),
        expected_version: Optional[int] = None,
    ) -> Car:
        self._check_uploads(uploads)
        car = await self._load(car_id)
        if expected_version is not None and expected_version != car.version:
            raise ConcurrentModification(f"car {car_id} is at version {car.version}, not {expected_version}")

        for key, value in patch.patches().items():
            setattr(car, key, value)

        removed = [reference for reference in remove_images if reference in car.images]
        remaining = drop_references(car.images, removed)
        appended = await self.ingestor.ingest(uploads, car_id=car_id) if uploads else []
        car.images = reconcile_images(remaining, image_order, appended)

        try:
            await self.session.commit()
        except StaleDataError as exc:
            await self.session.rollback()
            await self.remove_assets(appended, car_id=car_id)
            raise ConcurrentModification(f"car {car_id} was modified concurrently") from exc
        except Exception:
            await self.session.rollback()
            await self.remove_assets(appended, car_id=car_id)
            raise

        await self.remove_assets(removed, car_id=car_id)
        self.logger.info(
            "car_updated",
            car_id=car_id,
            version=car.version,
            appended_images=len(appended),
            removed_images=len(removed),
        )
        return car

    async def delete_car(self, car_id: str) -> None:
        # Clean up the latest image list, then delete by id regardless of version.
        car = await self._load(car_id, refresh=True)
        references = list(car.images or [])
        await self.remove_assets(references, car_id=car_id)
        await self.session.execute(delete(Car).where(Car.car_id == car_id))
        await self.session.commit()
        self.logger.info("car_deleted", car_id=car_id, images=len(references))

    async def get_car(self, car_id: str) -> Car:
        return await self._load(car_id)

    async def list_cars(
        self,
        *,
        make: Optional[str] = None,
        year: Optional[int] = None,
        sort: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> dict[str, Any]:
        page = max(page, 1)
        per_page = page_size or self.settings.page_size

        conditions = []
        if make and make != "all":
            conditions.append(Car.make == make)
        if year is not None:
            conditions.append(Car.year == year)

        total = (await self.session.execute(select(func.count()).select_from(Car).where(*conditions))).scalar_one()
        order = SORT_OPTIONS.get(sort or "", Car.created_at.desc())
        stmt = select(Car).where(*conditions).order_by(order, Car.car_id).offset((page - 1) * per_page).limit(per_page)
        cars = (await self.session.execute(stmt)).scalars().all()

        makes = (await self.session.execute(select(Car.make).distinct().order_by(Car.make))).scalars().all()
        years_stmt = select(Car.year).where(Car.year.is_not(None)).distinct().order_by(Car.year.desc())
        years = (await self.session.execute(years_stmt)).scalars().all()

        return {
            "items": list(cars),
            "page": page,
            "page_size": per_page,
            "total": total,
            "total_pages": math.ceil(total / per_page),
            "makes": list(makes),
            "years": list(years),
        }

    async def remove_assets(self, references: Sequence[str], *, car_id: Optional[str] = None) -> int:
        """Best-effort removal of stored images. Returns how many files were actually deleted."""
        removed = 0
        for reference in references:
            try:
                name = self.storage.name_for_reference(reference)
                if await asyncio.to_thread(self.storage.delete, name):
                    removed += 1
                else:
                    self.logger.info("asset_already_missing", car_id=car_id, reference=reference)
            except (OSError, ValueError) as exc:
                self.logger.warning("asset_cleanup_failed", car_id=car_id, reference=reference, error=str(exc))
        return removed

    async def _load(self, car_id: str, *, refresh: bool = False) -> Car:
        car = await self.session.get(Car, car_id, populate_existing=refresh)
        if car is None:
            raise NotFound(f"car {car_id} not found")
        return car

    def _check_uploads(self, uploads: Sequence[RawUpload]) -> None:
        check_uploads(
            uploads,
            max_images=self.settings.max_images_per_batch,
            max_bytes=self.settings.max_image_bytes,
        )


def car_snapshot(car: Car) -> dict[str, Any]:
    payload: dict[str, Any] = {field: getattr(car, field) for field in SCALAR_FIELDS}
    payload.update(
        {
            "car_id": car.car_id,
            "images": list(car.images or []),
            "version": car.version,
            "created_at": car.created_at,
            "updated_at": car.updated_at,
        }
    )
    return payload


__all__ = ["CatalogService", "SORT_OPTIONS", "car_snapshot"]
