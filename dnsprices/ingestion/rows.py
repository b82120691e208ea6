"""Data row extraction below a located header."""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Optional

from dnsprices.ingestion.header import Grid
from dnsprices.models import HeaderLocation, PriceRow

_INTEGER = re.compile(r"[+-]?[0-9]+")

# Signed 64-bit range of the store's INTEGER columns
INT_MIN = -(2**63)
INT_MAX = 2**63 - 1


def parse_int(text: str) -> Optional[int]:
    """Parse a decimal integer cell, None if the cell is anything else.

    Values outside the signed 64-bit range are rejected like malformed ones.
    """
    text = text.strip()
    if not _INTEGER.fullmatch(text):
        return None
    value = int(text)
    if value < INT_MIN or value > INT_MAX:
        return None
    return value


def extract_rows(sheet: Grid, location: HeaderLocation) -> Iterator[PriceRow]:
    """Yield every row below the header whose code, price and bonus are integers.

    Category captions, blank lines and other non-product rows are skipped
    silently. Values are not range-checked.
    """
    for row in range(location.row + 1, sheet.row_count):
        product_id = parse_int(sheet.cell(row, location.id_col))
        price = parse_int(sheet.cell(row, location.price_col))
        bonus = parse_int(sheet.cell(row, location.bonus_col))
        if product_id is None or price is None or bonus is None:
            continue

        yield PriceRow(
            product_id=product_id,
            name=sheet.cell(row, location.name_col),
            price=price,
            bonus=bonus,
        )
