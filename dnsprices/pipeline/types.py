"""Type definitions for pipeline operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class WriterState(str, Enum):
    """Lifecycle of a store-backed writer.

    UNOPENED -> OPEN on the first successful write, UNOPENED -> FAILED when the
    store cannot be opened, OPEN/FAILED -> CLOSED on close().
    """

    UNOPENED = "UNOPENED"
    OPEN = "OPEN"
    FAILED = "FAILED"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class WriteResult:
    """Outcome of writing one price-list row."""

    price_changed: bool = False
    bonus_changed: bool = False

    @property
    def changed(self) -> bool:
        return self.price_changed or self.bonus_changed


@dataclass
class SheetSummary:
    """Counts collected while ingesting one sheet."""

    sheet_name: str
    extracted: int = 0
    price_changed: int = 0
    bonus_changed: int = 0
    failed: int = 0
    error: Optional[str] = None
    row_errors: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        """True when the sheet had no recognizable header."""
        return self.error is not None


@dataclass
class IngestionSummary:
    """Result of ingesting a whole workbook."""

    city: str
    sheets: list[SheetSummary] = field(default_factory=list)

    @property
    def extracted(self) -> int:
        return sum(s.extracted for s in self.sheets)

    @property
    def price_changed(self) -> int:
        return sum(s.price_changed for s in self.sheets)

    @property
    def bonus_changed(self) -> int:
        return sum(s.bonus_changed for s in self.sheets)

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.sheets)

    @property
    def skipped_sheets(self) -> int:
        return sum(1 for s in self.sheets if s.skipped)
