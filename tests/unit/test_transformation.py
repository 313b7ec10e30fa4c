"""
Unit Tests - Transformation Layer
"""
from datetime import date

import polars as pl
import pytest

from sportstv_analytics.ingestion.reference import ReferenceLookups
from sportstv_analytics.transformation.aggregator import (
    AggregateKey,
    aggregate_daily,
    date_attributes,
    total_transactions,
)
from sportstv_analytics.transformation.processor import BatchProcessor, BatchStats


class TestBatchStats:
    """Tests for the batch counters"""

    def test_addition_is_fieldwise(self):
        a = BatchStats(records_read=10, valid_records=7, missing_country=3, fact_rows_written=2)
        b = BatchStats(records_read=5, valid_records=4, missing_date=1, inferred_sport=2)

        total = a + b

        assert total.records_read == 15
        assert total.valid_records == 11
        assert total.missing_country == 3
        assert total.missing_date == 1
        assert total.inferred_sport == 2
        assert total.fact_rows_written == 2
        assert total.is_balanced

    def test_retention_rate(self):
        assert BatchStats(records_read=8, valid_records=6, missing_sport=2).retention_rate == 75.0
        assert BatchStats().retention_rate == 100.0

    def test_unbalanced(self):
        assert not BatchStats(records_read=3, valid_records=1).is_balanced


class TestBatchProcessor:
    """Tests for enrichment and filtering"""

    def test_drop_reasons_are_exclusive(self, lookups, raw_batch):
        result = BatchProcessor(lookups).process(raw_batch)
        stats = result.stats

        assert stats.records_read == 6
        assert stats.valid_records == 3
        assert stats.missing_country == 1
        assert stats.missing_sport == 1
        assert stats.missing_date == 1
        assert stats.inferred_sport == 1
        assert stats.is_balanced

    def test_enriched_rows(self, lookups, raw_batch):
        enriched = BatchProcessor(lookups).process(raw_batch).enriched

        assert enriched["transaction_id"].to_list() == ["1", "2", "3"]
        assert enriched["country_id"].to_list() == [1, 1, 3]
        assert enriched["sport"].to_list() == ["Football", "Football", "Ice Hockey"]
        assert enriched["streaming_date"].to_list() == [
            date(2024, 3, 1), date(2024, 3, 1), date(2024, 3, 2),
        ]
        assert "_drop_reason" not in enriched.columns

    def test_null_measures_become_zero(self, lookups, raw_batch):
        enriched = BatchProcessor(lookups).process(raw_batch).enriched

        assert enriched["minutes_streamed"].to_list() == [30, 0, 60]
        assert enriched["completed"].to_list() == [1, 0, 0]

    def test_country_checked_before_sport_and_date(self, lookups):
        batch = pl.DataFrame({
            "transaction_id": ["1"],
            "user_id": ["999"],
            "asset_id": ["XYZ-1"],
            "streaming_date": ["garbage"],
            "minutes_streamed": [5],
            "completed": [0],
        })

        stats = BatchProcessor(lookups).process(batch).stats

        assert stats.missing_country == 1
        assert stats.missing_sport == 0
        assert stats.missing_date == 0

    def test_catalogue_sport_preferred_over_inference(self):
        lookups = ReferenceLookups.from_pairs(
            asset_sport=[("DEL-1", "Basketball")],
            user_country=[("101", 1)],
        )
        batch = pl.DataFrame({
            "transaction_id": ["1"],
            "user_id": ["101"],
            "asset_id": ["DEL-1"],
            "streaming_date": ["2024-03-01"],
            "minutes_streamed": [5],
            "completed": [0],
        })

        result = BatchProcessor(lookups).process(batch)

        assert result.enriched["sport"].to_list() == ["Basketball"]
        assert result.stats.inferred_sport == 0

    def test_custom_inference(self, lookups, raw_batch):
        processor = BatchProcessor(lookups, inference=lambda asset_id: None)

        stats = processor.process(raw_batch).stats

        assert stats.inferred_sport == 0
        assert stats.missing_sport == 2
        assert stats.is_balanced

    def test_empty_batch(self, lookups, raw_batch):
        result = BatchProcessor(lookups).process(raw_batch.head(0))

        assert result.enriched.height == 0
        assert result.stats == BatchStats()


class TestDateAttributes:

    def test_regular_date(self):
        attrs = date_attributes(date(2024, 3, 1))

        assert attrs.date_id == 20240301
        assert attrs.year == 2024
        assert attrs.quarter == 1
        assert attrs.month == 3
        assert attrs.week == 9
        assert attrs.day_of_month == 1
        assert attrs.day_of_week == 6  # Friday

    def test_sunday_is_day_one(self):
        assert date_attributes(date(2024, 3, 3)).day_of_week == 1

    @pytest.mark.parametrize("value,week", [
        (date(2024, 12, 30), 1),
        (date(2021, 1, 1), 53),
        (date(2020, 12, 31), 53),
    ])
    def test_iso_week_at_year_boundary(self, value, week):
        assert date_attributes(value).week == week

    @pytest.mark.parametrize("month,quarter", [(1, 1), (3, 1), (4, 2), (9, 3), (10, 4), (12, 4)])
    def test_quarter(self, month, quarter):
        assert date_attributes(date(2024, month, 15)).quarter == quarter


class TestAggregateDaily:

    def test_groups_and_measures(self, enriched_batch):
        summaries = aggregate_daily(enriched_batch)

        assert [s.key for s in summaries] == [
            AggregateKey(date(2024, 3, 1), 1, "Football"),
            AggregateKey(date(2024, 3, 1), 2, "Ice Hockey"),
            AggregateKey(date(2024, 12, 30), 3, "Ice Hockey"),
        ]

        football = summaries[0]
        assert football.transaction_count == 3
        assert football.unique_user_count == 2
        assert football.total_minutes_streamed == 60
        assert football.completed_streams == 2

    def test_calendar_attributes(self, enriched_batch):
        last = aggregate_daily(enriched_batch)[-1]

        assert (last.year, last.quarter, last.month, last.week) == (2024, 4, 12, 1)

    def test_as_row(self, enriched_batch):
        row = aggregate_daily(enriched_batch)[0].as_row()

        assert row == {
            "date_id": 20240301,
            "country_id": 1,
            "sport_name": "Football",
            "transaction_count": 3,
            "unique_user_count": 2,
            "total_minutes_streamed": 60,
            "completed_streams": 2,
            "year": 2024,
            "quarter": 1,
            "month": 3,
            "week": 9,
        }

    def test_transaction_total_preserved(self, enriched_batch):
        assert total_transactions(aggregate_daily(enriched_batch)) == enriched_batch.height

    def test_empty_frame(self, enriched_batch):
        assert aggregate_daily(enriched_batch.head(0)) == []
