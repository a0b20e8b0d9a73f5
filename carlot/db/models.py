from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from carlot.core.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Car(Base):
    """A vehicle listing. ``images`` is ordered; the first reference is the primary photo."""

    __tablename__ = "cars"
    __table_args__ = (
        Index("ix_cars_make_year", "make", "year"),
    )

    car_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    make: Mapped[str] = mapped_column(String(64), nullable=False)
    model: Mapped[str] = mapped_column(String(64), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    exterior_color: Mapped[str | None] = mapped_column(String(64), nullable=True)
    interior_color: Mapped[str | None] = mapped_column(String(64), nullable=True)
    mileage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    engine: Mapped[str | None] = mapped_column(String(128), nullable=True)
    transmission: Mapped[str | None] = mapped_column(String(128), nullable=True)
    drivetrain: Mapped[str | None] = mapped_column(String(32), nullable=True)
    fuel: Mapped[str | None] = mapped_column(String(32), nullable=True)
    body_style: Mapped[str | None] = mapped_column(String(32), nullable=True)
    vin: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Always reassigned as a new list; in-place mutation is not tracked.
    images: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}


__all__ = ["Car"]
