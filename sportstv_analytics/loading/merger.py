"""
Upsert Merger

Writes daily summaries into fact_streaming_summary with insert-or-accumulate
semantics: a new key is inserted, an existing key has its additive measures
increased by the incoming values. Because addition commutes, batches and
sources may arrive in any order and still land on the same totals.

Known limitation: unique_user_count is accumulated like the other measures,
so a key touched by several batches holds the sum of per-batch distinct
counts. A user seen in two batches for the same key is counted twice.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import structlog
from sqlalchemy import Numeric, case, cast, delete, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.dml import Insert

from sportstv_analytics.database.models import ADDITIVE_MEASURES, FactStreamingSummary
from sportstv_analytics.transformation.aggregator import DailySummary

logger = structlog.get_logger(__name__)

fact_table = FactStreamingSummary.__table__

KEY_COLUMNS = ("date_id", "country_id", "sport_name")


@dataclass
class MergeResult:
    """Outcome of merging one batch of summaries"""
    rows_written: int = 0
    rows_failed: int = 0
    sub_batches: int = 0
    failed_sub_batches: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.failed_sub_batches == 0


def build_upsert(dialect_name: str, rows: List[Dict[str, Any]]) -> Insert:
    """
    Multi-row parameterized INSERT that adds measures on primary-key conflict.

    Args:
        dialect_name: SQLAlchemy dialect name of the target engine
        rows: Column values, one dict per fact row

    Raises:
        ValueError: For dialects without native upsert support
    """
    if dialect_name in ("mysql", "mariadb"):
        from sqlalchemy.dialects.mysql import insert as mysql_insert

        stmt = mysql_insert(fact_table).values(rows)
        return stmt.on_duplicate_key_update({
            name: fact_table.c[name] + stmt.inserted[name] for name in ADDITIVE_MEASURES
        })

    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    else:
        raise ValueError(f"Upsert not supported for dialect: {dialect_name}")

    stmt = dialect_insert(fact_table).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=list(KEY_COLUMNS),
        set_={name: fact_table.c[name] + stmt.excluded[name] for name in ADDITIVE_MEASURES},
    )


class UpsertMerger:
    """
    Sub-batched insert-or-accumulate writer for the fact table.

    Each sub-batch runs in its own transaction. A failing sub-batch is logged
    and skipped; the rows it carried stay missing until the next full rebuild.

    Example:
        merger = UpsertMerger(engine, sub_batch_size=500)
        merger.clear()
        result = merger.merge(summaries)
        ...
        merger.finalize_averages()
    """

    def __init__(self, engine: Engine, sub_batch_size: int = 500):
        if sub_batch_size <= 0:
            raise ValueError("sub_batch_size must be positive")
        self.engine = engine
        self.sub_batch_size = sub_batch_size

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def clear(self) -> int:
        """Delete every fact row; returns the number of rows removed"""
        with self.engine.begin() as conn:
            result = conn.execute(delete(fact_table))
        logger.info("Cleared fact table", table=fact_table.name, rows=result.rowcount)
        return result.rowcount

    def merge(self, summaries: Sequence[DailySummary]) -> MergeResult:
        """
        Upsert summaries in bounded sub-batches.

        Args:
            summaries: Aggregated rows of one processing batch

        Returns:
            MergeResult with written/failed counts and error messages
        """
        result = MergeResult()

        for start in range(0, len(summaries), self.sub_batch_size):
            chunk = summaries[start:start + self.sub_batch_size]
            rows = [s.as_row() for s in chunk]
            result.sub_batches += 1

            try:
                with self.engine.begin() as conn:
                    conn.execute(build_upsert(self.dialect_name, rows))
            except SQLAlchemyError as e:
                result.rows_failed += len(rows)
                result.failed_sub_batches += 1
                result.errors.append(f"rows {start + 1}-{start + len(rows)}: {e}")
                logger.error(
                    "Sub-batch upsert failed",
                    first_row=start + 1,
                    rows=len(rows),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            result.rows_written += len(rows)

        return result

    def finalize_averages(self) -> int:
        """
        Recompute avg_minutes_per_stream from the accumulated totals.

        Runs once after every source has been merged; per-batch averages are
        meaningless because the totals keep growing.
        """
        minutes = fact_table.c.total_minutes_streamed
        count = fact_table.c.transaction_count

        average = case(
            (count > 0, func.round(cast(minutes * 1.0 / count, Numeric(20, 8)), 2)),
            else_=0,
        )

        with self.engine.begin() as conn:
            result = conn.execute(update(fact_table).values(avg_minutes_per_stream=average))

        logger.info("Calculated avg_minutes_per_stream", rows=result.rowcount)
        return result.rowcount
