"""
Batch Record Processor

Enriches a raw transaction batch with country and sport, filters out
records that cannot be resolved, and reports why each dropped record was
dropped.

Resolution per record:
- country: user_id through the user->country mapping
- sport: asset_id through the asset->sport mapping, falling back to prefix
  inference for orphaned assets
- date: streaming_date parsed as YYYY-MM-DD

A dropped record counts against exactly one reason, checked in the order
country, sport, date, so the counters always add up to the records read.
"""

from dataclasses import dataclass, fields
from typing import Callable, List, Optional, Tuple

import polars as pl
import structlog

from sportstv_analytics.ingestion.reference import ReferenceLookups
from sportstv_analytics.ingestion.sources import RAW_TRANSACTION_SCHEMA, parse_streaming_date
from sportstv_analytics.transformation.inference import infer_sport

logger = structlog.get_logger(__name__)

DROP_REASONS = ("missing_country", "missing_sport", "missing_date")


@dataclass(frozen=True)
class BatchStats:
    """
    Counters for one unit of work.

    Immutable; stages return fresh values and the orchestrator folds them
    with ``+``.
    """
    records_read: int = 0
    valid_records: int = 0
    missing_country: int = 0
    missing_sport: int = 0
    missing_date: int = 0
    inferred_sport: int = 0
    fact_rows_written: int = 0
    fact_rows_failed: int = 0
    failed_sub_batches: int = 0

    def __add__(self, other: "BatchStats") -> "BatchStats":
        if not isinstance(other, BatchStats):
            return NotImplemented
        return BatchStats(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })

    @property
    def dropped_records(self) -> int:
        return self.missing_country + self.missing_sport + self.missing_date

    @property
    def is_balanced(self) -> bool:
        """Every record read is either valid or counted under one drop reason"""
        return self.records_read == self.valid_records + self.dropped_records

    @property
    def retention_rate(self) -> float:
        """Percentage of records read that survived enrichment"""
        if self.records_read == 0:
            return 100.0
        return (self.valid_records / self.records_read) * 100


@dataclass(frozen=True)
class ProcessedBatch:
    """Valid enriched records plus the batch counters"""
    enriched: pl.DataFrame
    stats: BatchStats


class BatchProcessor:
    """
    Resolves country and sport for every record of a batch.

    Lookups are O(1) dict probes; reference data is never re-read per batch.

    Example:
        processor = BatchProcessor(lookups)
        processed = processor.process(batch.frame)
        processed.enriched  # only valid rows, with country_id and sport
    """

    def __init__(
        self,
        lookups: ReferenceLookups,
        inference: Callable[[Optional[str]], Optional[str]] = infer_sport,
    ):
        self.lookups = lookups
        self.inference = inference

    def _resolve_sports(self, asset_ids: List[Optional[str]]) -> Tuple[List[Optional[str]], int]:
        sports: List[Optional[str]] = []
        inferred = 0
        for asset_id in asset_ids:
            sport = self.lookups.sport_for(asset_id)
            if sport is None:
                sport = self.inference(asset_id)
                if sport is not None:
                    inferred += 1
            sports.append(sport)
        return sports, inferred

    def process(self, batch: pl.DataFrame) -> ProcessedBatch:
        """
        Enrich and filter one batch.

        Args:
            batch: Frame with the raw transaction schema

        Returns:
            ProcessedBatch with valid rows only and per-reason drop counts
        """
        records_read = batch.height
        if records_read == 0:
            return ProcessedBatch(enriched=_empty_enriched(), stats=BatchStats())

        countries = [self.lookups.country_for(u) for u in batch["user_id"].to_list()]
        sports, inferred = self._resolve_sports(batch["asset_id"].to_list())

        df = batch.with_columns([
            parse_streaming_date(),
            pl.Series("country_id", countries, dtype=pl.Int64),
            pl.Series("sport", sports, dtype=pl.Utf8),
        ])

        df = df.with_columns(
            pl.when(pl.col("country_id").is_null())
            .then(pl.lit("missing_country"))
            .when(pl.col("sport").is_null())
            .then(pl.lit("missing_sport"))
            .when(pl.col("streaming_date").is_null())
            .then(pl.lit("missing_date"))
            .otherwise(pl.lit(None, dtype=pl.Utf8))
            .alias("_drop_reason")
        )

        counts = df.select([
            (pl.col("_drop_reason") == reason).sum().alias(reason) for reason in DROP_REASONS
        ]).row(0, named=True)

        enriched = (
            df.filter(pl.col("_drop_reason").is_null())
            .drop("_drop_reason")
            .with_columns([
                pl.col("minutes_streamed").fill_null(0),
                pl.col("completed").fill_null(0),
            ])
        )

        stats = BatchStats(
            records_read=records_read,
            valid_records=enriched.height,
            missing_country=counts.get("missing_country", 0),
            missing_sport=counts.get("missing_sport", 0),
            missing_date=counts.get("missing_date", 0),
            inferred_sport=inferred,
        )

        if stats.dropped_records:
            logger.debug(
                "Records dropped",
                missing_country=stats.missing_country,
                missing_sport=stats.missing_sport,
                missing_date=stats.missing_date,
            )
        if inferred:
            logger.debug("Inferred sport for orphaned assets", count=inferred)

        return ProcessedBatch(enriched=enriched, stats=stats)


ENRICHED_TRANSACTION_SCHEMA = {
    **RAW_TRANSACTION_SCHEMA,
    "streaming_date": pl.Date,
    "country_id": pl.Int64,
    "sport": pl.Utf8,
}


def _empty_enriched() -> pl.DataFrame:
    return pl.DataFrame(schema=ENRICHED_TRANSACTION_SCHEMA)
