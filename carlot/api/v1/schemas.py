from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    version: str
    environment: str
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnvCheckResponse(BaseModel):
    jpeg: bool
    png: bool
    gif: bool
    webp: bool
    heif: bool


class CarResponse(BaseModel):
    car_id: str
    make: str
    model: str
    year: Optional[int]
    price: float
    description: Optional[str]
    exterior_color: Optional[str]
    interior_color: Optional[str]
    mileage: Optional[int]
    engine: Optional[str]
    transmission: Optional[str]
    drivetrain: Optional[str]
    fuel: Optional[str]
    body_style: Optional[str]
    vin: Optional[str]
    images: List[str] = Field(description="Public image references; the first is the primary photo.")
    version: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class CarMutationResponse(CarResponse):
    submitted_images: int = Field(description="Uploads received with this request.")


class CarListResponse(BaseModel):
    items: List[CarResponse]
    page: int
    page_size: int
    total: int
    total_pages: int
    makes: List[str]
    years: List[int]


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "CarResponse",
    "CarMutationResponse",
    "CarListResponse",
]
