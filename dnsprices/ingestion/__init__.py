"""Data ingestion module for dnsprices.

Handles reading price-list workbooks and locating their data.
"""

from dnsprices.ingestion.header import locate_header
from dnsprices.ingestion.pricelists import city_from_filename, ingest_sheet, ingest_workbook
from dnsprices.ingestion.rows import extract_rows
from dnsprices.ingestion.workbook import Sheet, load_workbook

__all__ = [
    "Sheet",
    "load_workbook",
    "locate_header",
    "extract_rows",
    "city_from_filename",
    "ingest_sheet",
    "ingest_workbook",
]
