from __future__ import annotations

from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from starlette.datastructures import UploadFile

from carlot.api import deps
from carlot.core import errors
from carlot.core.config import Settings
from carlot.core.logging import get_logger
from carlot.ingest.uploads import RawUpload, check_batch_size, resolve_media_type
from carlot.schemas import SCALAR_FIELDS, CarCreate, CarUpdate
from carlot.services.catalog_service import car_snapshot

from . import schemas


router = APIRouter(prefix="/cars", tags=["cars"])
logger = get_logger(component="cars_api")

IMAGES_FIELD = "images"
ORDER_FIELD = "images_order"
REMOVE_FIELD = "remove_images"
VERSION_FIELD = "version"

_ERROR_STATUS: dict[type[errors.CatalogError], int] = {
    errors.UnsupportedMediaType: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    errors.BatchTooLarge: status.HTTP_400_BAD_REQUEST,
    errors.UploadTooLarge: status.HTTP_413_CONTENT_TOO_LARGE,
    errors.ValidationError: status.HTTP_422_UNPROCESSABLE_CONTENT,
    errors.NotFound: status.HTTP_404_NOT_FOUND,
    errors.ConcurrentModification: status.HTTP_409_CONFLICT,
}


def _http_error(exc: errors.CatalogError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.code)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.code)


class _CarForm:
    """Scalar fields and image parts of a multipart car request."""

    def __init__(self, fields: dict[str, list[str]], files: list[UploadFile]):
        self.fields = fields
        self.files = files

    def scalars(self) -> dict[str, str]:
        # Empty inputs mean "not provided".
        values: dict[str, str] = {}
        for name in SCALAR_FIELDS:
            raw = self.fields.get(name)
            if raw and raw[-1].strip():
                values[name] = raw[-1]
        return values

    def references(self, name: str) -> list[str]:
        items: list[str] = []
        for raw in self.fields.get(name, []):
            items.extend(part.strip() for part in raw.split(",") if part.strip())
        return items

    def version(self) -> Optional[int]:
        raw = (self.fields.get(VERSION_FIELD) or [""])[-1].strip()
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError:
            raise RequestValidationError(
                [{"type": "int_parsing", "loc": ("body", VERSION_FIELD), "msg": "version must be an integer", "input": raw}]
            )


async def _read_form(request: Request) -> _CarForm:
    form = await request.form()
    fields: dict[str, list[str]] = {}
    files: list[UploadFile] = []
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key == IMAGES_FIELD:
                files.append(value)
            continue
        fields.setdefault(key, []).append(value)
    return _CarForm(fields, files)


async def _read_uploads(files: list[UploadFile], settings: Settings) -> list[RawUpload]:
    """Apply the per-request count, media-type and per-file size limits before any decoding."""
    check_batch_size(len(files), settings.max_images_per_batch)
    uploads: list[RawUpload] = []
    for part in files:
        if not part.filename and not part.size:
            continue
        media_type = resolve_media_type(part.content_type, part.filename)
        if part.size is not None and part.size > settings.max_image_bytes:
            raise errors.UploadTooLarge(f"{part.filename} exceeds {settings.max_image_bytes} bytes")
        content = await part.read(settings.max_image_bytes + 1)
        await part.close()
        if len(content) > settings.max_image_bytes:
            raise errors.UploadTooLarge(f"{part.filename} exceeds {settings.max_image_bytes} bytes")
        if not content:
            logger.info("empty_upload_skipped", filename=part.filename)
            continue
        uploads.append(RawUpload(content=content, media_type=media_type, filename=part.filename or ""))
    return uploads


def _validate(model: type[pydantic.BaseModel], values: dict[str, str]):
    try:
        return model.model_validate(values)
    except pydantic.ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc


@router.get("", response_model=schemas.CarListResponse, summary="Inventory listing")
async def list_cars(
    service: deps.CatalogDependency,
    make: Optional[str] = Query(default=None),
    year: Optional[int] = Query(default=None),
    sort: Optional[str] = Query(default=None, pattern="^(price|year)-(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1, le=100),
) -> schemas.CarListResponse:
    result = await service.list_cars(make=make, year=year, sort=sort, page=page, page_size=page_size)
    items = [schemas.CarResponse(**car_snapshot(car)) for car in result.pop("items")]
    return schemas.CarListResponse(items=items, **result)


@router.post("", response_model=schemas.CarMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_car(
    request: Request,
    service: deps.CatalogDependency,
    context: deps.AdminDependency,
    settings: Settings = Depends(deps.get_app_settings),
) -> schemas.CarMutationResponse:
    form = await _read_form(request)
    fields = _validate(CarCreate, form.scalars())
    try:
        uploads = await _read_uploads(form.files, settings)
        car = await service.create_car(fields, uploads)
    except errors.CatalogError as exc:
        raise _http_error(exc) from exc
    return schemas.CarMutationResponse(**car_snapshot(car), submitted_images=len(uploads))


@router.get("/{car_id}", response_model=schemas.CarResponse)
async def get_car(car_id: str, service: deps.CatalogDependency) -> schemas.CarResponse:
    try:
        car = await service.get_car(car_id)
    except errors.NotFound as exc:
        raise _http_error(exc) from exc
    return schemas.CarResponse(**car_snapshot(car))


@router.patch("/{car_id}", response_model=schemas.CarMutationResponse)
async def edit_car(
    car_id: str,
    request: Request,
    service: deps.CatalogDependency,
    context: deps.AdminDependency,
    settings: Settings = Depends(deps.get_app_settings),
) -> schemas.CarMutationResponse:
    form = await _read_form(request)
    patch = _validate(CarUpdate, form.scalars())
    try:
        uploads = await _read_uploads(form.files, settings)
        car = await service.edit_car(
            car_id,
            patch,
            image_order=form.references(ORDER_FIELD),
            uploads=uploads,
            remove_images=form.references(REMOVE_FIELD),
            expected_version=form.version(),
        )
    except errors.CatalogError as exc:
        raise _http_error(exc) from exc
    return schemas.CarMutationResponse(**car_snapshot(car), submitted_images=len(uploads))


@router.delete("/{car_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_car(car_id: str, service: deps.CatalogDependency, context: deps.AdminDependency) -> Response:
    try:
        await service.delete_car(car_id)
    except errors.CatalogError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
