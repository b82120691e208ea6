"""Database layer for dnsprices with async SQLAlchemy."""

from dnsprices.db.connection import create_engine, get_session, init_db
from dnsprices.db.models import (
    Base,
    BonusObservationModel,
    CityModel,
    PriceObservationModel,
    ProductModel,
)

__all__ = [
    "Base",
    "CityModel",
    "ProductModel",
    "PriceObservationModel",
    "BonusObservationModel",
    "create_engine",
    "get_session",
    "init_db",
]
