"""Exception hierarchy for dnsprices.

Structural and store errors are recoverable and reported per sheet or per row;
configuration errors abort the run before any store is opened.
"""

from __future__ import annotations


class DnsPricesError(Exception):
    """Base class for all dnsprices errors."""

    pass


class HeaderNotFoundError(DnsPricesError):
    """Raised when no row of a sheet carries all recognized header labels."""

    def __init__(self, sheet_name: str = ""):
        self.sheet_name = sheet_name
        super().__init__("No entries found")


class StoreUnavailableError(DnsPricesError):
    """Raised by every write once the store has failed to open."""

    def __init__(self, reason: str = ""):
        self.reason = reason
        super().__init__("No connection" + (f": {reason}" if reason else ""))


class CityNameError(DnsPricesError):
    """Raised when the city name cannot be derived from the file name."""

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"Failed to extract name of the city from '{file_name}'")


class WorkbookError(DnsPricesError):
    """Raised when a price-list workbook cannot be read."""

    pass
