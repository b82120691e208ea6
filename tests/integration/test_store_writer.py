"""Integration tests for the change-detecting store writer.

Runs against temporary SQLite files through aiosqlite.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from dnsprices.db.connection import create_engine, get_session
from dnsprices.db.models import (
    BonusObservationModel,
    CityModel,
    MetricKind,
    PriceObservationModel,
    ProductModel,
)
from dnsprices.db.price_queries import get_current_value, get_history
from dnsprices.exceptions import StoreUnavailableError
from dnsprices.pipeline import store_writer
from dnsprices.pipeline.store_writer import StoreWriter
from dnsprices.pipeline.types import WriterState


RUN_1 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
RUN_2 = datetime(2024, 3, 2, 9, 0, tzinfo=timezone.utc)
RUN_3 = datetime(2024, 3, 3, 9, 0, tzinfo=timezone.utc)


async def run_once(db_url: str, rows, city: str = "Moscow", run_timestamp: datetime = RUN_1, **kwargs):
    """Write rows in one run and return the write results."""
    results = []
    async with StoreWriter(db_url, city, run_timestamp=run_timestamp, **kwargs) as writer:
        for row in rows:
            results.append(await writer.write(*row))
    return results


async def fetch_all(db_url: str, stmt):
    engine = create_engine(db_url)
    try:
        async with get_session(engine) as session:
            result = await session.execute(stmt)
            return result.all()
    finally:
        await engine.dispose()


async def count_rows(db_url: str, model) -> int:
    rows = await fetch_all(db_url, select(func.count()).select_from(model))
    return rows[0][0]


class TestChangeDetection:
    """Observations are appended only when values change."""

    @pytest.mark.asyncio
    async def test_first_observation_is_always_a_change(self, db_url):
        (result,) = await run_once(db_url, [(1001, "Widget", 1500, 15)])

        assert result.price_changed is True
        assert result.bonus_changed is True
        assert await count_rows(db_url, PriceObservationModel) == 1
        assert await count_rows(db_url, BonusObservationModel) == 1

    @pytest.mark.asyncio
    async def test_repeat_within_run_is_not_a_change(self, db_url):
        first, second = await run_once(db_url, [(1001, "Widget", 1500, 15), (1001, "Widget", 1500, 15)])

        assert first.changed
        assert not second.price_changed
        assert not second.bonus_changed
        assert await count_rows(db_url, PriceObservationModel) == 1

    @pytest.mark.asyncio
    async def test_repeat_across_runs_is_not_a_change(self, db_url):
        await run_once(db_url, [(1001, "Widget", 1500, 15)], run_timestamp=RUN_1)
        (result,) = await run_once(db_url, [(1001, "Widget", 1500, 15)], run_timestamp=RUN_2)

        assert not result.changed
        assert await count_rows(db_url, PriceObservationModel) == 1
        assert await count_rows(db_url, BonusObservationModel) == 1

    @pytest.mark.asyncio
    async def test_price_change_is_recorded(self, db_url):
        await run_once(db_url, [(1001, "Widget", 1500, 15)], run_timestamp=RUN_1)
        (result,) = await run_once(db_url, [(1001, "Widget", 1399, 15)], run_timestamp=RUN_2)

        assert result.price_changed is True
        assert result.bonus_changed is False

        engine = create_engine(db_url)
        try:
            async with get_session(engine) as session:
                city_id = (await session.execute(select(CityModel.id))).scalar_one()
                assert await get_current_value(session, MetricKind.PRICE, 1001, city_id) == 1399
                assert await get_current_value(session, MetricKind.BONUS, 1001, city_id) == 15
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_return_to_earlier_value_is_a_change(self, db_url):
        await run_once(db_url, [(1001, "Widget", 1500, 15)], run_timestamp=RUN_1)
        await run_once(db_url, [(1001, "Widget", 1399, 15)], run_timestamp=RUN_2)
        (result,) = await run_once(db_url, [(1001, "Widget", 1500, 15)], run_timestamp=RUN_3)

        assert result.price_changed is True
        rows = await fetch_all(
            db_url,
            select(PriceObservationModel.price).order_by(PriceObservationModel.observed_at),
        )
        assert [r.price for r in rows] == [1500, 1399, 1500]

    @pytest.mark.asyncio
    async def test_history_is_kept_per_city(self, db_url):
        await run_once(db_url, [(1001, "Widget", 1500, 15)], city="Moscow", run_timestamp=RUN_1)
        (result,) = await run_once(db_url, [(1001, "Widget", 1500, 15)], city="Kazan", run_timestamp=RUN_1)

        assert result.price_changed is True
        assert await count_rows(db_url, PriceObservationModel) == 2

    @pytest.mark.asyncio
    async def test_history_newest_first(self, db_url):
        await run_once(db_url, [(1001, "Widget", 1500, 15)], run_timestamp=RUN_1)
        await run_once(db_url, [(1001, "Widget", 1399, 20)], run_timestamp=RUN_2)

        engine = create_engine(db_url)
        try:
            async with get_session(engine) as session:
                entries = await get_history(session, 1001, 1)
        finally:
            await engine.dispose()

        assert [(e.kind, e.value) for e in entries] == [
            (MetricKind.PRICE, 1399),
            (MetricKind.BONUS, 20),
            (MetricKind.PRICE, 1500),
            (MetricKind.BONUS, 15),
        ]


class TestProducts:
    """Products are created on first sight; names are only backfilled."""

    @pytest.mark.asyncio
    async def test_name_is_backfilled(self, db_url):
        await run_once(db_url, [(5, None, 100, 1)], run_timestamp=RUN_1)
        await run_once(db_url, [(5, "Widget", 100, 1)], run_timestamp=RUN_2)

        rows = await fetch_all(db_url, select(ProductModel.name).where(ProductModel.id == 5))
        assert rows[0].name == "Widget"

    @pytest.mark.asyncio
    async def test_missing_name_never_overwrites(self, db_url):
        await run_once(db_url, [(5, "Widget", 100, 1)], run_timestamp=RUN_1)
        await run_once(db_url, [(5, None, 100, 1), (5, "", 100, 1)], run_timestamp=RUN_2)

        rows = await fetch_all(db_url, select(ProductModel.name).where(ProductModel.id == 5))
        assert rows[0].name == "Widget"

    @pytest.mark.asyncio
    async def test_known_name_is_not_replaced(self, db_url):
        await run_once(db_url, [(5, "Widget", 100, 1)], run_timestamp=RUN_1)
        await run_once(db_url, [(5, "Widget Pro", 100, 1)], run_timestamp=RUN_2)

        rows = await fetch_all(db_url, select(ProductModel.name).where(ProductModel.id == 5))
        assert rows[0].name == "Widget"

    @pytest.mark.asyncio
    async def test_product_id_comes_from_price_list(self, db_url):
        await run_once(db_url, [(1054236, "Widget", 100, 1)])

        rows = await fetch_all(db_url, select(ProductModel.id))
        assert [r.id for r in rows] == [1054236]


class TestCities:
    """The run's city is resolved or registered when the store opens."""

    @pytest.mark.asyncio
    async def test_new_cities_get_increasing_ids(self, db_url):
        await run_once(db_url, [(1, "A", 1, 1)], city="Moscow")
        await run_once(db_url, [(1, "A", 1, 1)], city="Kazan")
        await run_once(db_url, [(1, "A", 1, 1)], city="Moscow", run_timestamp=RUN_2)

        rows = await fetch_all(db_url, select(CityModel.id, CityModel.name).order_by(CityModel.id))
        assert [(r.id, r.name) for r in rows] == [(1, "Moscow"), (2, "Kazan")]

    @pytest.mark.asyncio
    async def test_city_names_are_case_sensitive(self, db_url):
        await run_once(db_url, [(1, "A", 1, 1)], city="Rostov")
        (result,) = await run_once(db_url, [(1, "A", 1, 1)], city="rostov", run_timestamp=RUN_2)

        assert result.price_changed is True
        assert await count_rows(db_url, CityModel) == 2

    @pytest.mark.asyncio
    async def test_supplied_city_id_is_used(self, db_url):
        await run_once(db_url, [(1, "A", 1, 1)], city="Moscow", city_id=77)

        rows = await fetch_all(db_url, select(CityModel.id, CityModel.name))
        assert [(r.id, r.name) for r in rows] == [(77, "Moscow")]

    @pytest.mark.asyncio
    async def test_supplied_city_id_of_known_city(self, db_url):
        await run_once(db_url, [(1, "A", 1, 1)], city="Moscow", city_id=77)
        (result,) = await run_once(db_url, [(1, "A", 1, 1)], city="Moscow", city_id=77, run_timestamp=RUN_2)

        assert not result.changed
        assert await count_rows(db_url, CityModel) == 1


class TestWriterLifecycle:
    """Store opening, failure and release."""

    @pytest.mark.asyncio
    async def test_store_is_opened_lazily(self, db_path, db_url):
        writer = StoreWriter(db_url, "Moscow", run_timestamp=RUN_1)

        assert writer.state is WriterState.UNOPENED
        assert not db_path.exists()

        await writer.write(1, "A", 1, 1)
        assert writer.state is WriterState.OPEN

        await writer.close()
        assert writer.state is WriterState.CLOSED
        assert db_path.exists()

    @pytest.mark.asyncio
    async def test_close_without_writes_is_a_no_op(self, db_path, db_url):
        writer = StoreWriter(db_url, "Moscow")

        await writer.close()
        await writer.close()

        assert writer.state is WriterState.CLOSED
        assert not db_path.exists()

    @pytest.mark.asyncio
    async def test_unavailable_store_is_sticky(self, tmp_path, monkeypatch):
        opened = []
        real_create_engine = store_writer.create_engine

        def counting_create_engine(url, echo=False):
            opened.append(url)
            return real_create_engine(url, echo=echo)

        monkeypatch.setattr(store_writer, "create_engine", counting_create_engine)
        url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'prices.db'}"
        writer = StoreWriter(url, "Moscow")

        with pytest.raises(StoreUnavailableError):
            await writer.write(1, "A", 1, 1)
        with pytest.raises(StoreUnavailableError):
            await writer.write(2, "B", 2, 2)

        assert writer.state is WriterState.FAILED
        assert len(opened) == 1
        assert writer.get_stats()["written"] == 0

        await writer.close()
        assert writer.state is WriterState.CLOSED

    @pytest.mark.asyncio
    async def test_writes_after_close_fail(self, db_url):
        writer = StoreWriter(db_url, "Moscow")
        await writer.write(1, "A", 1, 1)
        await writer.close()

        with pytest.raises(StoreUnavailableError):
            await writer.write(2, "B", 2, 2)

    @pytest.mark.asyncio
    async def test_row_error_does_not_fail_the_run(self, db_url):
        writer = StoreWriter(db_url, "Moscow", run_timestamp=RUN_1)
        await writer.write(1001, "Widget", 1500, 15)

        # Same product with another price in the same run collides on (product, city, run)
        with pytest.raises(IntegrityError):
            await writer.write(1001, "Widget", 1400, 15)

        result = await writer.write(1002, "Gadget", 700, 7)
        assert result.changed
        assert writer.state is WriterState.OPEN
        await writer.close()

        stats = writer.get_stats()
        assert stats["written"] == 2
        assert stats["failed"] == 1

        rows = await fetch_all(db_url, select(PriceObservationModel.product_id, PriceObservationModel.price))
        assert sorted((r.product_id, r.price) for r in rows) == [(1001, 1500), (1002, 700)]

    @pytest.mark.asyncio
    async def test_nothing_is_visible_before_close(self, db_url):
        writer = StoreWriter(db_url, "Moscow", run_timestamp=RUN_1)
        await writer.write(1001, "Widget", 1500, 15)

        assert await count_rows(db_url, PriceObservationModel) == 0

        await writer.close()
        assert await count_rows(db_url, PriceObservationModel) == 1


class TestReferentialIntegrity:
    """Observations follow their city and product."""

    @pytest.mark.asyncio
    async def test_deleting_product_removes_its_observations(self, db_url):
        await run_once(db_url, [(1001, "Widget", 1500, 15), (1002, "Gadget", 700, 7)])

        engine = create_engine(db_url)
        try:
            async with get_session(engine) as session:
                await session.execute(delete(ProductModel).where(ProductModel.id == 1001))
        finally:
            await engine.dispose()

        assert await count_rows(db_url, PriceObservationModel) == 1
        assert await count_rows(db_url, BonusObservationModel) == 1

    @pytest.mark.asyncio
    async def test_deleting_city_removes_its_observations(self, db_url):
        await run_once(db_url, [(1001, "Widget", 1500, 15)], city="Moscow")
        await run_once(db_url, [(1001, "Widget", 1500, 15)], city="Kazan")

        engine = create_engine(db_url)
        try:
            async with get_session(engine) as session:
                await session.execute(delete(CityModel).where(CityModel.name == "Moscow"))
        finally:
            await engine.dispose()

        assert await count_rows(db_url, PriceObservationModel) == 1
        assert await count_rows(db_url, ProductModel) == 1
