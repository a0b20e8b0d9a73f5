from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20241018_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "cars",
        sa.Column("car_id", sa.String(length=32), primary_key=True),
        sa.Column("make", sa.String(length=64), nullable=False),
        sa.Column("model", sa.String(length=64), nullable=False),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("exterior_color", sa.String(length=64), nullable=True),
        sa.Column("interior_color", sa.String(length=64), nullable=True),
        sa.Column("mileage", sa.Integer(), nullable=True),
        sa.Column("engine", sa.String(length=128), nullable=True),
        sa.Column("transmission", sa.String(length=128), nullable=True),
        sa.Column("drivetrain", sa.String(length=32), nullable=True),
        sa.Column("fuel", sa.String(length=32), nullable=True),
        sa.Column("body_style", sa.String(length=32), nullable=True),
        sa.Column("vin", sa.String(length=32), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_cars_make_year", "cars", ["make", "year"])


def downgrade() -> None:
    op.drop_index("ix_cars_make_year", table_name="cars")
    op.drop_table("cars")
