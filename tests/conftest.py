"""Pytest configuration and fixtures for dnsprices tests.

Provides synthetic price-list sheets and temporary stores.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import pytest

from dnsprices.config import reset_config
from dnsprices.ingestion.workbook import Sheet


@pytest.fixture
def sheet_factory() -> Callable[..., Sheet]:
    """Build a Sheet from rows of arbitrary values."""

    def _build(rows: list[list], name: str = "Смартфоны") -> Sheet:
        return Sheet(name=name, rows=[["" if c is None else str(c) for c in row] for row in rows])

    return _build


@pytest.fixture
def price_sheet(sheet_factory) -> Sheet:
    """Category sheet with the header on row 2 and one malformed data row."""
    return sheet_factory(
        [
            ["Прайс-лист", "", "", ""],
            ["Смартфоны", "", "", ""],
            ["Код", "Наименование", "Цена, руб", "Бонусы"],
            ["1001", "Widget", "1500", "15"],
            ["1002", "Gadget", "n/a", "20"],
            ["1003", "", "990", "9"],
        ]
    )


@pytest.fixture
def headerless_sheet(sheet_factory) -> Sheet:
    """Sheet without the code/price/bonus header."""
    return sheet_factory(
        [
            ["Артикул", "Наименование", "Цена"],
            ["1001", "Widget", "1500"],
        ],
        name="Прочее",
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Location of a fresh SQLite store."""
    return tmp_path / "prices.db"


@pytest.fixture
def db_url(db_path: Path) -> str:
    """Async SQLAlchemy URL of a fresh SQLite store."""
    return f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables and restore logging afterwards."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("CITY_ID", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LOG_FORMAT", "console")
    reset_config()

    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    reset_config()
