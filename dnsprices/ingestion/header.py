"""Header row detection for price-list sheets.

Price lists start with a variable number of category and per-shop columns, so
the header row and the data columns have no fixed position. The header row is
the first one carrying the product code, price and bonus labels.
"""

from __future__ import annotations

from typing import Protocol

from dnsprices.exceptions import HeaderNotFoundError
from dnsprices.models import HeaderLocation

ID_LABEL = "Код"
PRICE_LABEL = "Цена, руб"
BONUS_LABEL = "Бонусы"

# Columns searched in row i: shops (i - 1) + code + category + price + bonus + leeway
WINDOW_LEEWAY = 5


class Grid(Protocol):
    """Anything that exposes a sheet as text cells."""

    @property
    def row_count(self) -> int: ...

    def cell(self, row: int, col: int) -> str: ...


def search_window(row: int) -> int:
    """Number of leading columns inspected in the given row."""
    return row + WINDOW_LEEWAY


def locate_header(sheet: Grid) -> HeaderLocation:
    """Find the header row and the code, price and bonus columns.

    The first occurrence of each label, scanning left to right, wins. Rows
    carrying only some of the labels are ignored.

    Raises:
        HeaderNotFoundError: If no row carries all three labels
    """
    for row in range(sheet.row_count):
        columns: dict[str, int] = {}
        for col in range(search_window(row)):
            label = sheet.cell(row, col).strip()
            if label in (ID_LABEL, PRICE_LABEL, BONUS_LABEL) and label not in columns:
                columns[label] = col

        if len(columns) == 3:
            return HeaderLocation(
                row=row,
                id_col=columns[ID_LABEL],
                price_col=columns[PRICE_LABEL],
                bonus_col=columns[BONUS_LABEL],
            )

    raise HeaderNotFoundError(getattr(sheet, "name", ""))
