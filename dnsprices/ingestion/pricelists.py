"""Price-list ingestion for dnsprices.

A price-list workbook is published per city, one sheet per product category.
Each sheet goes through header detection and row extraction, and every
extracted row is handed to a writer that records changed values.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from dnsprices.exceptions import CityNameError, HeaderNotFoundError, StoreUnavailableError
from dnsprices.ingestion.header import locate_header
from dnsprices.ingestion.rows import extract_rows
from dnsprices.ingestion.workbook import Sheet
from dnsprices.pipeline.base_writer import ObservationWriter
from dnsprices.pipeline.types import IngestionSummary, SheetSummary

logger = logging.getLogger(__name__)


def city_from_filename(file_path: Union[str, Path]) -> str:
    """Extract the city from a file name such as ``prices-Moscow.xls``.

    The city is the text between the last '-' and the last '.' of the base
    name. Case is preserved.

    Raises:
        CityNameError: If the name has no such part
    """
    name = Path(file_path).name
    start = name.rfind("-")
    end = name.rfind(".")
    if start >= 0 and end > start + 1:
        return name[start + 1 : end]
    raise CityNameError(name)


async def ingest_sheet(sheet: Sheet, writer: ObservationWriter) -> SheetSummary:
    """Ingest one sheet.

    A sheet without a recognizable header is reported in the summary and
    skipped. Store errors are recorded per row; later rows are still written.

    Args:
        sheet: Sheet to ingest
        writer: Destination for extracted rows

    Returns:
        SheetSummary with extraction and change counts
    """
    summary = SheetSummary(sheet_name=sheet.name)

    try:
        location = locate_header(sheet)
    except HeaderNotFoundError as e:
        summary.error = str(e)
        logger.warning(f"Sheet '{sheet.name}' skipped: {e}")
        return summary

    logger.debug(
        f"Sheet '{sheet.name}': header at row {location.row}, "
        f"code col {location.id_col}, price col {location.price_col}, bonus col {location.bonus_col}"
    )

    for row in extract_rows(sheet, location):
        summary.extracted += 1
        try:
            result = await writer.write(row.product_id, row.name, row.price, row.bonus)
        except (StoreUnavailableError, SQLAlchemyError) as e:
            summary.failed += 1
            summary.row_errors.append(f"{e} ({row.product_id}/{row.price}/{row.bonus})")
            if not isinstance(e, StoreUnavailableError):
                logger.error(f"Failed to write {row.product_id} from '{sheet.name}': {e}")
            continue

        if result.price_changed:
            summary.price_changed += 1
        if result.bonus_changed:
            summary.bonus_changed += 1

    logger.info(
        f"Sheet '{sheet.name}': extracted {summary.extracted}, "
        f"price changed {summary.price_changed}, bonus changed {summary.bonus_changed}"
    )
    return summary


async def ingest_workbook(
    sheets: Iterable[Sheet],
    writer: ObservationWriter,
    city: str,
    on_sheet: Optional[Callable[[SheetSummary], None]] = None,
) -> IngestionSummary:
    """Ingest every sheet of a workbook and finalize the writer.

    The writer is closed on every exit path, committing what was written.

    Args:
        sheets: Sheets in workbook order
        writer: Destination for extracted rows
        city: City the workbook belongs to
        on_sheet: Called with each sheet's summary as soon as it is done

    Returns:
        IngestionSummary with one entry per sheet
    """
    summary = IngestionSummary(city=city)

    try:
        for sheet in sheets:
            sheet_summary = await ingest_sheet(sheet, writer)
            summary.sheets.append(sheet_summary)
            if on_sheet is not None:
                on_sheet(sheet_summary)
    finally:
        await writer.close()

    return summary
