"""Workbook reading for price-list exports.

Every sheet is loaded as a plain grid of text cells. Header detection works on
raw positions, so no header inference is done at read time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from dnsprices.exceptions import WorkbookError

logger = logging.getLogger(__name__)

# Legacy BIFF workbooks need xlrd, Office Open XML ones openpyxl
EXCEL_ENGINES = {".xls": "xlrd", ".xlsx": "openpyxl"}


@dataclass
class Sheet:
    """One worksheet as a grid of text cells."""

    name: str
    rows: list[list[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def cell(self, row: int, col: int) -> str:
        """Text of a cell; empty string outside the grid."""
        if row < 0 or col < 0 or row >= len(self.rows):
            return ""
        cells = self.rows[row]
        if col >= len(cells):
            return ""
        return cells[col]

    @classmethod
    def from_frame(cls, name: str, df: pd.DataFrame) -> Sheet:
        rows = [[_cell_text(value) for value in record] for record in df.itertuples(index=False, name=None)]
        return cls(name=str(name), rows=rows)


def _cell_text(value: Any) -> str:
    """Render a cell value the way it reads in the spreadsheet."""
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        # Numeric cells come back as floats; codes and prices are whole numbers
        if value.is_integer():
            return str(int(value))
    elif pd.isna(value):
        return ""
    return str(value).strip()


def load_workbook(file_path: Path) -> list[Sheet]:
    """Read every sheet of an XLS or XLSX workbook.

    Args:
        file_path: Path to the workbook

    Returns:
        Sheets in workbook order

    Raises:
        WorkbookError: If the file is missing, has an unsupported format or
            cannot be parsed
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise WorkbookError(f"Price list not found: {file_path}")

    engine = EXCEL_ENGINES.get(file_path.suffix.lower())
    if engine is None:
        raise WorkbookError(f"Unsupported file format: {file_path.suffix}. Use XLS or XLSX.")

    try:
        frames = pd.read_excel(file_path, sheet_name=None, header=None, dtype=object, engine=engine)
    except Exception as e:
        raise WorkbookError(f"Failed to read {file_path.name}: {e}") from e

    sheets = [Sheet.from_frame(name, df) for name, df in frames.items()]
    logger.info(f"Read {len(sheets)} sheets from {file_path}")
    return sheets
