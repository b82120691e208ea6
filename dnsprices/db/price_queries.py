"""Common observation query utilities.

The current value of a metric for (product, city) is the value of its most
recent observation. Helpers accept either an AsyncSession or an
AsyncConnection so the writer can reuse them inside its run transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from dnsprices.db.models import BonusObservationModel, CityModel, MetricKind, PriceObservationModel

Executor = Union[AsyncSession, AsyncConnection]

OBSERVATION_MODELS = {
    MetricKind.PRICE: (PriceObservationModel, PriceObservationModel.price),
    MetricKind.BONUS: (BonusObservationModel, BonusObservationModel.bonus),
}


@dataclass(frozen=True)
class ObservationEntry:
    """One row of a product's observation history."""

    kind: MetricKind
    value: int
    observed_at: datetime


async def get_city_id(db: Executor, name: str) -> Optional[int]:
    """Look up a city by its exact (case-sensitive) name."""
    result = await db.execute(select(CityModel.id).where(CityModel.name == name))
    return result.scalar_one_or_none()


async def get_next_city_id(db: Executor) -> int:
    """Identifier for a city seen for the first time: max(id) + 1."""
    result = await db.execute(select(func.coalesce(func.max(CityModel.id), 0)))
    return int(result.scalar_one()) + 1


async def get_current_value(
    db: Executor,
    kind: MetricKind,
    product_id: int,
    city_id: int,
) -> Optional[int]:
    """Get the most recently observed value of a metric.

    Args:
        db: Session or connection
        kind: Price or bonus
        product_id: Product code from the price list
        city_id: City identifier

    Returns:
        The value, or None if the pair was never observed
    """
    model, value_column = OBSERVATION_MODELS[kind]
    stmt = (
        select(value_column)
        .where(model.product_id == product_id, model.city_id == city_id)
        .order_by(model.observed_at.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_history(
    db: Executor,
    product_id: int,
    city_id: int,
) -> list[ObservationEntry]:
    """Get the full price and bonus history of a product in a city.

    Returns:
        Entries of both kinds, newest first; price before bonus on equal timestamps
    """
    entries: list[ObservationEntry] = []

    for kind, (model, value_column) in OBSERVATION_MODELS.items():
        stmt = select(value_column, model.observed_at).where(
            model.product_id == product_id,
            model.city_id == city_id,
        )
        result = await db.execute(stmt)
        entries.extend(
            ObservationEntry(kind=kind, value=value, observed_at=observed_at)
            for value, observed_at in result.all()
        )

    order = list(OBSERVATION_MODELS)
    entries.sort(key=lambda e: order.index(e.kind))
    entries.sort(key=lambda e: e.observed_at, reverse=True)
    return entries
