"""
Data Quality Module
"""
from .validators import (
    FactTableValidator,
    FactTableSummary,
    ValidationResult,
    ValidationStatus,
    summarize_fact_table,
)

__all__ = [
    "FactTableValidator",
    "FactTableSummary",
    "ValidationResult",
    "ValidationStatus",
    "summarize_fact_table",
]
