"""
Transaction Sources

Paginated readers for the two streaming transaction sources:
- the operational SQLite store (``streaming_txns``)
- the flat-file CSV export

Both yield bounded polars batches normalized to the same raw schema, so the
rest of the pipeline never needs to know where a batch came from. Paging is
by offset; a source can be restarted from any offset.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from threading import Event
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import polars as pl
import structlog
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sportstv_analytics.errors import PipelineCancelled, SourceUnavailableError
from sportstv_analytics.ingestion.reference import normalize_id

logger = structlog.get_logger(__name__)


RAW_TRANSACTION_SCHEMA: Dict[str, Any] = {
    "transaction_id": pl.Utf8,
    "user_id": pl.Utf8,
    "asset_id": pl.Utf8,
    "streaming_date": pl.Utf8,
    "minutes_streamed": pl.Int64,
    "completed": pl.Int64,
}

CSV_HEADER = (
    "transaction_id",
    "subscriber_id",
    "user_id",
    "asset_id",
    "streaming_date",
    "streaming_start_time",
    "minutes_streamed",
    "device_type",
    "quality_streamed",
    "completed",
)

CSV_NULL_VALUES = ["", "NA", "N/A", "NULL", "null", "None"]

DATE_FORMAT = "%Y-%m-%d"


def parse_streaming_date(column: str = "streaming_date") -> pl.Expr:
    """Parse the leading YYYY-MM-DD of a text column; malformed values become null"""
    return (
        pl.col(column)
        .cast(pl.Utf8)
        .str.strip_chars()
        .str.slice(0, 10)
        .str.strptime(pl.Date, DATE_FORMAT, strict=False)
        .alias(column)
    )


def _text(column: str) -> pl.Expr:
    value = pl.col(column).cast(pl.Utf8).str.strip_chars()
    return pl.when(value.str.len_chars() > 0).then(value).otherwise(None).alias(column)


def _integer(column: str) -> pl.Expr:
    value = pl.col(column).cast(pl.Utf8).str.strip_chars()
    lowered = value.str.to_lowercase()
    return (
        pl.when(lowered.is_in(["true", "t", "yes"]))
        .then(pl.lit(1, dtype=pl.Int64))
        .when(lowered.is_in(["false", "f", "no"]))
        .then(pl.lit(0, dtype=pl.Int64))
        .otherwise(value.cast(pl.Float64, strict=False).cast(pl.Int64, strict=False))
        .alias(column)
    )


def normalize_batch(df: pl.DataFrame) -> pl.DataFrame:
    """
    Project a source frame onto the raw transaction schema.

    Identifiers and dates become trimmed text (empty -> null); minutes and the
    completed flag become integers (unparsable -> null).

    Raises:
        ValueError: If a required column is missing
    """
    missing = [c for c in RAW_TRANSACTION_SCHEMA if c not in df.columns]
    if missing:
        raise ValueError(f"Source batch is missing columns: {missing}")

    return df.select([
        _text("transaction_id"),
        _text("user_id"),
        _text("asset_id"),
        _text("streaming_date"),
        _integer("minutes_streamed"),
        _integer("completed"),
    ])


def _to_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], DATE_FORMAT).date()
    except ValueError:
        return None


@dataclass(frozen=True)
class SourceBatch:
    """One bounded page of a source"""
    number: int
    offset: int
    frame: pl.DataFrame

    @property
    def size(self) -> int:
        return self.frame.height


class TransactionSource(ABC):
    """
    A finite, restartable sequence of raw transaction batches.

    Subclasses implement ``count``, ``fetch`` and ``date_range``; batching is
    shared.
    """

    name: str = "source"

    @abstractmethod
    def count(self) -> int:
        """Total number of transaction records in the source"""

    @abstractmethod
    def fetch(self, offset: int, limit: int) -> pl.DataFrame:
        """Read up to ``limit`` records starting at ``offset``, normalized"""

    @abstractmethod
    def date_range(self) -> Optional[Tuple[date, date]]:
        """Earliest and latest streaming date, or None for an empty source"""

    def iter_batches(
        self,
        batch_size: int,
        start_offset: int = 0,
        cancel_event: Optional[Event] = None,
    ) -> Iterator[SourceBatch]:
        """
        Lazily yield batches in offset order until the source is exhausted.

        Args:
            batch_size: Maximum records per batch
            start_offset: Offset to resume from
            cancel_event: Checked before every fetch

        Raises:
            PipelineCancelled: If ``cancel_event`` is set before a fetch
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        total = self.count()
        offset = start_offset
        number = start_offset // batch_size + 1

        while offset < total:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Pipeline cancelled", source=self.name, offset=offset)
                raise PipelineCancelled(f"Cancelled before {self.name} offset {offset}")
            frame = self.fetch(offset, batch_size)
            if frame.height == 0:
                logger.warning(
                    "Source ended before its counted size",
                    source=self.name,
                    offset=offset,
                    counted=total,
                )
                break
            yield SourceBatch(number=number, offset=offset, frame=frame)
            offset += batch_size
            number += 1


class OperationalStoreSource(TransactionSource):
    """
    Streaming transactions held in the operational SQLite store.

    Example:
        source = OperationalStoreSource(engine)
        for batch in source.iter_batches(50_000):
            ...
    """

    name = "sqlite"

    def __init__(self, engine: Engine, table: str = "streaming_txns"):
        self.engine = engine
        self.table = table

    def count(self) -> int:
        try:
            with self.engine.connect() as conn:
                return int(conn.execute(text(f"SELECT COUNT(*) FROM {self.table}")).scalar_one())
        except SQLAlchemyError as e:
            raise SourceUnavailableError(f"Cannot count {self.table}: {e}") from e

    def fetch(self, offset: int, limit: int) -> pl.DataFrame:
        query = text(f"""
            SELECT transaction_id, user_id, asset_id, streaming_date,
                   minutes_streamed, completed
            FROM {self.table}
            ORDER BY transaction_id
            LIMIT :limit OFFSET :offset
        """)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(query, {"limit": limit, "offset": offset}).all()
        except SQLAlchemyError as e:
            raise SourceUnavailableError(f"Cannot read {self.table} at offset {offset}: {e}") from e

        columns: Dict[str, List[Optional[str]]] = {name: [] for name in RAW_TRANSACTION_SCHEMA}
        for row in rows:
            for name, value in zip(RAW_TRANSACTION_SCHEMA, row):
                columns[name].append(normalize_id(value))

        frame = pl.DataFrame(columns, schema={name: pl.Utf8 for name in RAW_TRANSACTION_SCHEMA})
        try:
            return normalize_batch(frame)
        except ValueError as e:
            raise SourceUnavailableError(f"Cannot normalize {self.table}: {e}") from e

    def date_range(self) -> Optional[Tuple[date, date]]:
        # Text MIN/MAX would let a malformed value outrank real dates
        query = text(f"""
            SELECT DISTINCT substr(CAST(streaming_date AS TEXT), 1, 10)
            FROM {self.table}
            WHERE streaming_date IS NOT NULL
        """)
        try:
            with self.engine.connect() as conn:
                values = conn.execute(query).scalars().all()
        except SQLAlchemyError as e:
            raise SourceUnavailableError(f"Cannot read date range of {self.table}: {e}") from e

        dates = [d for d in (_to_date(v) for v in values) if d is not None]
        if not dates:
            return None
        return min(dates), max(dates)


class CsvExportSource(TransactionSource):
    """
    Streaming transactions from the delimited file export.

    All columns are read as text and normalized, so mixed or dirty values
    surface as nulls instead of parse failures.
    """

    name = "csv"

    def __init__(self, file_path: Union[str, Path], delimiter: str = ","):
        self.file_path = Path(file_path)
        self.delimiter = delimiter

    def _scan(self) -> pl.LazyFrame:
        if not self.file_path.exists():
            raise SourceUnavailableError(f"CSV export not found: {self.file_path}")
        # Over-long lines are cut to the header width; short ones are padded with nulls
        scan = pl.scan_csv(
            self.file_path,
            separator=self.delimiter,
            infer_schema_length=0,
            null_values=CSV_NULL_VALUES,
            truncate_ragged_lines=True,
        )
        missing = [c for c in RAW_TRANSACTION_SCHEMA if c not in scan.collect_schema().names()]
        if missing:
            raise SourceUnavailableError(
                f"CSV export {self.file_path} is missing columns: {missing}"
            )
        return scan

    def count(self) -> int:
        try:
            return int(self._scan().select(pl.len()).collect().item())
        except (OSError, pl.exceptions.PolarsError) as e:
            raise SourceUnavailableError(f"Cannot count {self.file_path}: {e}") from e

    def fetch(self, offset: int, limit: int) -> pl.DataFrame:
        try:
            frame = self._scan().slice(offset, limit).collect()
        except (OSError, pl.exceptions.PolarsError) as e:
            raise SourceUnavailableError(
                f"Cannot read {self.file_path} at offset {offset}: {e}"
            ) from e
        try:
            return normalize_batch(frame)
        except ValueError as e:
            raise SourceUnavailableError(f"Cannot normalize {self.file_path}: {e}") from e

    def date_range(self) -> Optional[Tuple[date, date]]:
        try:
            bounds = (
                self._scan()
                .select(parse_streaming_date())
                .select([
                    pl.col("streaming_date").min().alias("min_date"),
                    pl.col("streaming_date").max().alias("max_date"),
                ])
                .collect()
            )
        except (OSError, pl.exceptions.PolarsError) as e:
            raise SourceUnavailableError(f"Cannot read date range of {self.file_path}: {e}") from e

        start, end = bounds["min_date"][0], bounds["max_date"][0]
        if start is None or end is None:
            return None
        return start, end
