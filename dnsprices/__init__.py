"""dnsprices - price-list ingestion with change-detecting observation history."""

__version__ = "0.1.0"
