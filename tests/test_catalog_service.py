from __future__ import annotations

import asyncio

import pytest

from carlot.core.config import get_settings
from carlot.core.db import create_engine, create_session_factory
from carlot.core.errors import BatchTooLarge, ConcurrentModification, NotFound
from carlot.core.storage import get_storage
from carlot.ingest.uploads import RawUpload
from carlot.schemas import CarCreate, CarUpdate
from carlot.services.catalog_service import CatalogService
from tests.conftest import make_image


def run_with_service(scenario):
    """Run ``scenario(service, storage)`` against a fresh session on the test database."""
    settings = get_settings()
    storage = get_storage(settings)

    async def _run():
        engine = create_engine(settings)
        session_factory = create_session_factory(engine)
        try:
            async with session_factory() as session:
                return await scenario(CatalogService(settings, storage, session), storage)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


def run_with_two_services(scenario):
    """Run ``scenario(first, second, storage)`` with two independent sessions on the same database."""
    settings = get_settings()
    storage = get_storage(settings)

    async def _run():
        engine = create_engine(settings)
        session_factory = create_session_factory(engine)
        try:
            async with session_factory() as first_session, session_factory() as second_session:
                first = CatalogService(settings, storage, first_session)
                second = CatalogService(settings, storage, second_session)
                return await scenario(first, second, storage)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


def _jpeg(width: int = 2000, height: int = 1000) -> RawUpload:
    return RawUpload(make_image(width, height), "image/jpeg", "photo.jpg")


def _stored_names(storage, references):
    return [storage.name_for_reference(reference) for reference in references]


BMW = CarCreate(make="BMW", model="M340i", price=41500, year=2021)


def test_create_stores_normalized_images_in_order():
    async def scenario(service, storage):
        car = await service.create_car(BMW, [_jpeg(2000, 1000), _jpeg(800, 600)])
        return car, storage

    car, storage = run_with_service(scenario)

    assert car.version == 1
    assert len(car.images) == 2
    assert all(storage.exists(name) for name in _stored_names(storage, car.images))


def test_create_with_only_bad_images_still_creates_car():
    async def scenario(service, storage):
        car = await service.create_car(BMW, [RawUpload(b"junk", "image/png", "junk.png")])
        return await service.get_car(car.car_id)

    car = run_with_service(scenario)

    assert car.images == []
    assert car.make == "BMW"


def test_create_rejects_oversized_batch_without_writing(tmp_path):
    async def scenario(service, storage):
        uploads = [_jpeg(100, 100)] * (service.settings.max_images_per_batch + 1)
        with pytest.raises(BatchTooLarge):
            await service.create_car(BMW, uploads)
        return (await service.list_cars())["total"], list(storage.base_path.iterdir())

    total, files = run_with_service(scenario)

    assert total == 0
    assert files == []


def test_partial_update_leaves_other_fields_and_images():
    async def scenario(service, storage):
        car = await service.create_car(BMW, [_jpeg()])
        images = list(car.images)
        updated = await service.edit_car(car.car_id, CarUpdate(price=39900))
        return images, updated

    images, updated = run_with_service(scenario)

    assert updated.price == 39900
    assert updated.make == "BMW"
    assert updated.year == 2021
    assert updated.images == images
    assert updated.version == 2


def test_required_fields_cannot_be_cleared():
    async def scenario(service, storage):
        car = await service.create_car(BMW)
        return await service.edit_car(car.car_id, CarUpdate(make=None, year=None))

    updated = run_with_service(scenario)

    assert updated.make == "BMW"
    assert updated.year is None


def test_reorder_then_append():
    async def scenario(service, storage):
        car = await service.create_car(BMW, [_jpeg(), _jpeg(), _jpeg()])
        first, second, third = car.images
        updated = await service.edit_car(
            car.car_id,
            CarUpdate(),
            image_order=[third, "/uploads/stale.webp", first],
            uploads=[_jpeg(900, 600)],
        )
        return (first, second, third), updated.images

    (first, second, third), images = run_with_service(scenario)

    assert images[:3] == [third, first, second]
    assert len(images) == 4
    assert images[3] not in (first, second, third)


def test_remove_images_deletes_files_after_update():
    async def scenario(service, storage):
        car = await service.create_car(BMW, [_jpeg(), _jpeg()])
        keep, drop = car.images
        updated = await service.edit_car(car.car_id, CarUpdate(), remove_images=[drop, "/uploads/not-ours.webp"])
        return keep, drop, updated.images, storage

    keep, drop, images, storage = run_with_service(scenario)

    assert images == [keep]
    assert not storage.exists(storage.name_for_reference(drop))
    assert storage.exists(storage.name_for_reference(keep))


def test_stale_version_is_rejected_and_new_uploads_are_cleaned_up():
    async def scenario(service, storage):
        car = await service.create_car(BMW)
        await service.edit_car(car.car_id, CarUpdate(price=40000))
        with pytest.raises(ConcurrentModification):
            await service.edit_car(car.car_id, CarUpdate(price=1), expected_version=1, uploads=[_jpeg()])
        return await service.get_car(car.car_id), list(storage.base_path.iterdir())

    car, files = run_with_service(scenario)

    assert car.price == 40000
    assert files == []


def test_edit_missing_car_raises_not_found():
    async def scenario(service, storage):
        with pytest.raises(NotFound):
            await service.edit_car("missing", CarUpdate(price=1), uploads=[_jpeg()])
        return list(storage.base_path.iterdir())

    assert run_with_service(scenario) == []


def test_delete_removes_assets_and_tolerates_missing_files():
    async def scenario(service, storage):
        car = await service.create_car(BMW, [_jpeg(), _jpeg()])
        gone, present = _stored_names(storage, car.images)
        storage.delete(gone)
        await service.delete_car(car.car_id)
        with pytest.raises(NotFound):
            await service.get_car(car.car_id)
        return storage.exists(present)

    assert run_with_service(scenario) is False


def test_delete_missing_car_raises_not_found():
    async def scenario(service, storage):
        with pytest.raises(NotFound):
            await service.delete_car("missing")

    run_with_service(scenario)


def test_listing_filters_sorts_and_pages():
    async def scenario(service, storage):
        await service.create_car(CarCreate(make="BMW", model="330i", price=30000, year=2019))
        await service.create_car(CarCreate(make="BMW", model="M5", price=90000, year=2022))
        await service.create_car(CarCreate(make="Audi", model="A4", price=35000, year=2022))

        everything = await service.list_cars(sort="price-desc", page_size=2)
        second_page = await service.list_cars(sort="price-desc", page=2, page_size=2)
        bmw = await service.list_cars(make="BMW", sort="year-asc")
        by_year = await service.list_cars(year=2022, sort="price-asc")
        return everything, second_page, bmw, by_year

    everything, second_page, bmw, by_year = run_with_service(scenario)

    assert [car.model for car in everything["items"]] == ["M5", "A4"]
    assert everything["total"] == 3
    assert everything["total_pages"] == 2
    assert everything["makes"] == ["Audi", "BMW"]
    assert everything["years"] == [2022, 2019]
    assert [car.model for car in second_page["items"]] == ["330i"]
    assert [car.model for car in bmw["items"]] == ["330i", "M5"]
    assert [car.model for car in by_year["items"]] == ["A4", "M5"]


def test_edit_racing_another_edit_conflicts_and_removes_its_uploads():
    async def scenario(first, second, storage):
        car = await first.create_car(BMW, [_jpeg()])
        original_images = list(car.images)
        await second.edit_car(car.car_id, CarUpdate(price=2))
        with pytest.raises(ConcurrentModification):
            await first.edit_car(car.car_id, CarUpdate(price=3), uploads=[_jpeg(900, 600)])
        second.session.expunge_all()
        current = await second.get_car(car.car_id)
        return original_images, current, sorted(path.name for path in storage.base_path.iterdir())

    original_images, current, files = run_with_two_services(scenario)

    assert current.price == 2
    assert current.images == original_images
    assert files == sorted(name.rsplit("/", 1)[-1] for name in original_images)


def test_delete_after_another_edit_still_removes_car_and_files():
    async def scenario(first, second, storage):
        car = await first.create_car(BMW, [_jpeg(), _jpeg()])
        updated = await second.edit_car(car.car_id, CarUpdate(price=2), uploads=[_jpeg(900, 600)])
        await first.delete_car(car.car_id)
        second.session.expunge_all()
        with pytest.raises(NotFound):
            await second.get_car(car.car_id)
        return updated.images, [storage.exists(name) for name in _stored_names(storage, updated.images)]

    images, still_stored = run_with_two_services(scenario)

    assert len(images) == 3
    assert still_stored == [False, False, False]
