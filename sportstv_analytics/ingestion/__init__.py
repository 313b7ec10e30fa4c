"""
Data Ingestion Module
"""
from .reference import ReferenceLookups, build_reference_lookups
from .sources import CsvExportSource, OperationalStoreSource, TransactionSource

__all__ = [
    "ReferenceLookups",
    "build_reference_lookups",
    "CsvExportSource",
    "OperationalStoreSource",
    "TransactionSource",
]
