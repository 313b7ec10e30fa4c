"""
Data Transformation Module
"""
from .aggregator import AggregateKey, DailySummary, aggregate_daily
from .inference import SportInferenceEngine, infer_sport
from .processor import BatchProcessor, BatchStats, ProcessedBatch

__all__ = [
    "AggregateKey",
    "DailySummary",
    "aggregate_daily",
    "SportInferenceEngine",
    "infer_sport",
    "BatchProcessor",
    "BatchStats",
    "ProcessedBatch",
]
