"""Change-detecting observation writer backed by a relational store.

For every row:
- Make sure the product exists, filling in its name if it had none
- Compare incoming price and bonus with the most recent observation
- Append a new observation, stamped with the run's start time, only on change

The store is opened lazily on the first write. One connection and one
transaction span the whole run; close() commits it, or rolls it back when the
store failed to open.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction

from dnsprices.db.connection import create_engine, init_db
from dnsprices.db.models import CityModel, MetricKind, ProductModel
from dnsprices.db.price_queries import (
    OBSERVATION_MODELS,
    get_city_id,
    get_current_value,
    get_next_city_id,
)
from dnsprices.exceptions import StoreUnavailableError
from dnsprices.pipeline.types import WriteResult, WriterState

logger = logging.getLogger(__name__)


class StoreWriter:
    """Persist price-list rows as price and bonus observations."""

    def __init__(
        self,
        database_url: str,
        city: str,
        city_id: Optional[int] = None,
        run_timestamp: Optional[datetime] = None,
        echo: bool = False,
    ):
        """Initialize writer. Nothing is opened until the first write.

        Args:
            database_url: SQLAlchemy async URL of the store
            city: Name of the city the price list belongs to
            city_id: Identifier to register the city under when it is new
            run_timestamp: Timestamp of every observation written in this run
            echo: Log SQL statements
        """
        self.database_url = database_url
        self.city = city
        self.city_id = city_id
        self.run_timestamp = run_timestamp or datetime.now(timezone.utc)
        self.echo = echo

        self.state = WriterState.UNOPENED
        self._failure: Optional[str] = None
        self._engine: Optional[AsyncEngine] = None
        self._conn: Optional[AsyncConnection] = None
        self._tx: Optional[AsyncTransaction] = None

        self.stats = {
            "written": 0,
            "price_changed": 0,
            "bonus_changed": 0,
            "failed": 0,
        }

    async def __aenter__(self) -> StoreWriter:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def write(
        self,
        product_id: int,
        name: Optional[str],
        price: int,
        bonus: int,
    ) -> WriteResult:
        """Record one row, appending observations for changed values only.

        Returns:
            WriteResult telling which of price and bonus changed

        Raises:
            StoreUnavailableError: The store could not be opened (sticky)
            SQLAlchemyError: A statement of this row failed; later rows are
                still attempted
        """
        if self.state is WriterState.UNOPENED:
            await self._open()

        if self.state is WriterState.FAILED:
            raise StoreUnavailableError(self._failure or "")
        if self.state is WriterState.CLOSED:
            raise StoreUnavailableError("writer is closed")

        try:
            await self._ensure_product(product_id, name)
            price_changed = await self._record_if_changed(MetricKind.PRICE, product_id, price)
            bonus_changed = await self._record_if_changed(MetricKind.BONUS, product_id, bonus)
        except Exception:
            self.stats["failed"] += 1
            raise

        self.stats["written"] += 1
        if price_changed:
            self.stats["price_changed"] += 1
        if bonus_changed:
            self.stats["bonus_changed"] += 1

        return WriteResult(price_changed=price_changed, bonus_changed=bonus_changed)

    async def close(self) -> None:
        """Commit (or roll back after an open failure) and release the store.

        A writer that was never opened has nothing to release.
        """
        if self.state in (WriterState.UNOPENED, WriterState.CLOSED):
            self.state = WriterState.CLOSED
            return

        failed = self.state is WriterState.FAILED
        self.state = WriterState.CLOSED

        try:
            if self._tx is not None:
                if failed:
                    await self._tx.rollback()
                    logger.error("Observation writes rolled back, store was unavailable")
                else:
                    await self._tx.commit()
                    logger.info(
                        f"Observations committed for {self.city}: "
                        f"{self.stats['written']} written, "
                        f"{self.stats['price_changed']} price changes, "
                        f"{self.stats['bonus_changed']} bonus changes, "
                        f"{self.stats['failed']} failed"
                    )
        finally:
            await self._release()

    def get_stats(self) -> dict:
        """Get processing statistics."""
        return self.stats.copy()

    async def _open(self) -> None:
        """Open the store, create tables, resolve the city, begin the run transaction."""
        try:
            self._engine = create_engine(self.database_url, echo=self.echo)
            await init_db(self._engine)

            async with self._engine.begin() as conn:
                self.city_id = await self._resolve_city(conn)

            self._conn = await self._engine.connect()
            self._tx = await self._conn.begin()
        except Exception as e:
            logger.error(f"Failed to open store {self.database_url}: {e}")
            self._failure = str(e)
            self.state = WriterState.FAILED
            return

        self.state = WriterState.OPEN
        logger.info(f"Store opened: city={self.city} (id={self.city_id}), run={self.run_timestamp.isoformat()}")

    async def _resolve_city(self, conn: AsyncConnection) -> int:
        """Find the run's city, registering it if the store has not seen it yet."""
        if self.city_id is None:
            city_id = await get_city_id(conn, self.city)
            if city_id is not None:
                return city_id
            city_id = await get_next_city_id(conn)
        else:
            city_id = self.city_id
            result = await conn.execute(select(CityModel.name).where(CityModel.id == city_id))
            existing_name = result.scalar_one_or_none()
            if existing_name is not None:
                if existing_name != self.city:
                    logger.warning(
                        f"City id {city_id} is registered as '{existing_name}', "
                        f"using it for '{self.city}'"
                    )
                return city_id

        await conn.execute(insert(CityModel).values(id=city_id, name=self.city))
        logger.info(f"Registered new city '{self.city}' with id {city_id}")
        return city_id

    async def _ensure_product(self, product_id: int, name: Optional[str]) -> None:
        """Create the product, or give it a name if it has none."""
        result = await self._conn.execute(
            select(ProductModel.id, ProductModel.name).where(ProductModel.id == product_id)
        )
        row = result.one_or_none()

        name = (name or "").strip() or None

        if row is None:
            await self._conn.execute(insert(ProductModel).values(id=product_id, name=name))
        elif row.name is None and name:
            await self._conn.execute(
                update(ProductModel)
                .where(ProductModel.id == product_id, ProductModel.name.is_(None))
                .values(name=name)
            )

    async def _record_if_changed(self, kind: MetricKind, product_id: int, value: int) -> bool:
        """Append an observation if the value differs from the current one."""
        current = await get_current_value(self._conn, kind, product_id, self.city_id)
        if current is not None and current == value:
            return False

        model, value_column = OBSERVATION_MODELS[kind]
        await self._conn.execute(
            insert(model).values(
                {
                    "product_id": product_id,
                    "city_id": self.city_id,
                    value_column.key: value,
                    "observed_at": self.run_timestamp,
                }
            )
        )

        if current is not None:
            logger.debug(f"{kind.value} change for {product_id} in {self.city}: {current} → {value}")
        return True

    async def _release(self) -> None:
        """Close the connection and dispose of the engine."""
        try:
            if self._conn is not None:
                await self._conn.close()
        finally:
            self._conn = None
            self._tx = None
            if self._engine is not None:
                await self._engine.dispose()
                self._engine = None
