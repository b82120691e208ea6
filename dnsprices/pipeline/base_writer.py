"""Writer contract and the console echo writer.

A writer receives every parsed price-list row and decides whether it changes
the recorded history. The ingestion code depends only on this contract.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

from rich.console import Console

from dnsprices.pipeline.types import WriteResult

logger = logging.getLogger(__name__)


@runtime_checkable
class ObservationWriter(Protocol):
    """Sink for parsed price-list rows."""

    async def write(
        self,
        product_id: int,
        name: Optional[str],
        price: int,
        bonus: int,
    ) -> WriteResult:
        """Record one row and report which metrics changed."""
        ...

    async def close(self) -> None:
        """Finalize the run and release any resources."""
        ...


class EchoWriter:
    """Print every row instead of storing it.

    Nothing is remembered between rows, so every row counts as a change.
    Useful for checking how a workbook is parsed without touching a store.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.stats = {
            "written": 0,
            "price_changed": 0,
            "bonus_changed": 0,
            "failed": 0,
        }

    async def write(
        self,
        product_id: int,
        name: Optional[str],
        price: int,
        bonus: int,
    ) -> WriteResult:
        self.console.print(
            f"Id = {product_id:>10d}, price = {price:>7d}, bonus = {bonus:>5d}"
            + (f", name = {name}" if name else ""),
            highlight=False,
            markup=False,
        )
        self.stats["written"] += 1
        self.stats["price_changed"] += 1
        self.stats["bonus_changed"] += 1
        return WriteResult(price_changed=True, bonus_changed=True)

    async def close(self) -> None:
        logger.debug(f"Echo writer closed after {self.stats['written']} rows")

    def get_stats(self) -> dict:
        return self.stats.copy()
