"""
Daily Aggregator

Reduces enriched transactions of one batch to one summary row per
(date, country, sport).

Measures:
- transaction_count, total_minutes_streamed, completed_streams: sums
- unique_user_count: number of distinct users in the group

The distinct count is only exact within a batch; see the merger for how it
behaves once several batches touch the same key.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

GROUP_COLUMNS = ["streaming_date", "country_id", "sport"]


@dataclass(frozen=True)
class DateAttributes:
    """Calendar attributes derived from a single date"""
    date_id: int
    year: int
    quarter: int
    month: int
    week: int  # ISO-8601 week of year
    day_of_month: int
    day_of_week: int  # 1=Sunday .. 7=Saturday


def date_attributes(value: date) -> DateAttributes:
    """Derive the calendar attributes stored alongside fact and date rows"""
    return DateAttributes(
        date_id=int(value.strftime("%Y%m%d")),
        year=value.year,
        quarter=(value.month - 1) // 3 + 1,
        month=value.month,
        week=value.isocalendar()[1],
        day_of_month=value.day,
        day_of_week=value.isoweekday() % 7 + 1,
    )


@dataclass(frozen=True, order=True)
class AggregateKey:
    """Grain of the fact table"""
    date: date
    country_id: int
    sport: str

    @property
    def date_id(self) -> int:
        return int(self.date.strftime("%Y%m%d"))


@dataclass(frozen=True)
class DailySummary:
    """Measures for one AggregateKey within one batch"""
    key: AggregateKey
    transaction_count: int
    unique_user_count: int
    total_minutes_streamed: int
    completed_streams: int
    year: int
    quarter: int
    month: int
    week: int

    def as_row(self) -> Dict[str, Any]:
        """Column values for fact_streaming_summary"""
        return {
            "date_id": self.key.date_id,
            "country_id": self.key.country_id,
            "sport_name": self.key.sport,
            "transaction_count": self.transaction_count,
            "unique_user_count": self.unique_user_count,
            "total_minutes_streamed": self.total_minutes_streamed,
            "completed_streams": self.completed_streams,
            "year": self.year,
            "quarter": self.quarter,
            "month": self.month,
            "week": self.week,
        }


def aggregate_daily(enriched: pl.DataFrame) -> List[DailySummary]:
    """
    Group enriched transactions by (date, country, sport).

    Args:
        enriched: Valid rows from the batch processor

    Returns:
        One DailySummary per distinct key, ordered by key
    """
    if enriched.height == 0:
        return []

    grouped = (
        enriched.group_by(GROUP_COLUMNS)
        .agg([
            pl.len().alias("transaction_count"),
            pl.col("user_id").n_unique().alias("unique_user_count"),
            pl.col("minutes_streamed").sum().alias("total_minutes_streamed"),
            pl.col("completed").sum().alias("completed_streams"),
        ])
        .sort(GROUP_COLUMNS)
    )

    # Calendar attributes once per distinct date, not per record
    calendar = {d: date_attributes(d) for d in grouped["streaming_date"].unique().to_list()}

    summaries = [
        _summary_from_row(row, calendar[row["streaming_date"]])
        for row in grouped.iter_rows(named=True)
    ]

    logger.debug(
        "Batch aggregated",
        input_rows=enriched.height,
        groups=len(summaries),
        dates=len(calendar),
    )
    return summaries


def _summary_from_row(row: Dict[str, Any], attrs: DateAttributes) -> DailySummary:
    return DailySummary(
        key=AggregateKey(
            date=row["streaming_date"],
            country_id=int(row["country_id"]),
            sport=row["sport"],
        ),
        transaction_count=int(row["transaction_count"]),
        unique_user_count=int(row["unique_user_count"]),
        total_minutes_streamed=int(row["total_minutes_streamed"]),
        completed_streams=int(row["completed_streams"]),
        year=attrs.year,
        quarter=attrs.quarter,
        month=attrs.month,
        week=attrs.week,
    )


def total_transactions(summaries: Iterable[DailySummary]) -> int:
    """Sum of transaction_count over summaries"""
    return sum(s.transaction_count for s in summaries)
