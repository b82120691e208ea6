"""SQLAlchemy database models for dnsprices.

Cities and products are identity tables; price and bonus observations form an
append-only ledger keyed by (product, city, observed_at).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class MetricKind(str, Enum):
    """Value streams tracked per (product, city), one observation table each."""

    PRICE = "price"
    BONUS = "bonus"


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class CityModel(Base):
    """City a price list was published for."""

    __tablename__ = "cities"

    # Assigned as max(id) + 1 on first sight, or supplied externally
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class ProductModel(Base):
    """Product identified by the code printed in the price list."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str | None] = mapped_column(Text)


class PriceObservationModel(Base):
    """Price of a product in a city, recorded only when it changed."""

    __tablename__ = "price_observations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    city_id: Mapped[int] = mapped_column(
        ForeignKey("cities.id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("product_id", "city_id", "observed_at", name="uq_price_observation"),
    )


class BonusObservationModel(Base):
    """Loyalty-bonus value of a product in a city, recorded only when it changed."""

    __tablename__ = "bonus_observations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    city_id: Mapped[int] = mapped_column(
        ForeignKey("cities.id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bonus: Mapped[int] = mapped_column(Integer, nullable=False)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("product_id", "city_id", "observed_at", name="uq_bonus_observation"),
    )
