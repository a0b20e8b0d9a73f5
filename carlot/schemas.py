from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CarFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    year: Optional[int] = Field(default=None, ge=1886, le=2100)
    description: Optional[str] = Field(default=None, max_length=5000)
    exterior_color: Optional[str] = Field(default=None, max_length=64)
    interior_color: Optional[str] = Field(default=None, max_length=64)
    mileage: Optional[int] = Field(default=None, ge=0)
    engine: Optional[str] = Field(default=None, max_length=128)
    transmission: Optional[str] = Field(default=None, max_length=128)
    drivetrain: Optional[str] = Field(default=None, max_length=32)
    fuel: Optional[str] = Field(default=None, max_length=32)
    body_style: Optional[str] = Field(default=None, max_length=32)
    vin: Optional[str] = Field(default=None, max_length=32)


class CarCreate(_CarFields):
    """Scalar fields of a new listing."""

    make: str = Field(..., min_length=1, max_length=64, json_schema_extra={"example": "BMW"})
    model: str = Field(..., min_length=1, max_length=64, json_schema_extra={"example": "M340i"})
    price: float = Field(..., gt=0, json_schema_extra={"example": 41500})


class CarUpdate(_CarFields):
    """Partial update; only fields explicitly set are applied (see ``model_fields_set``)."""

    make: Optional[str] = Field(default=None, min_length=1, max_length=64)
    model: Optional[str] = Field(default=None, min_length=1, max_length=64)
    price: Optional[float] = Field(default=None, gt=0)

    def patches(self) -> dict[str, object]:
        values = self.model_dump(exclude_unset=True)
        # Required columns cannot be cleared.
        return {key: value for key, value in values.items() if value is not None or key not in _REQUIRED_FIELDS}


_REQUIRED_FIELDS = frozenset({"make", "model", "price"})

SCALAR_FIELDS: tuple[str, ...] = tuple(CarCreate.model_fields)


__all__ = ["CarCreate", "CarUpdate", "SCALAR_FIELDS"]
