"""
Dimension Loads

Bulk reloads of dim_country, dim_sport and dim_date from the operational
store and the transaction sources. Each table is emptied and refilled in
chunks; unlike the fact table there is no accumulation.
"""

from datetime import date, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import delete, insert, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from sportstv_analytics.database.models import DimCountry, DimDate, DimSport
from sportstv_analytics.errors import ReferenceDataError
from sportstv_analytics.ingestion.sources import TransactionSource
from sportstv_analytics.transformation.aggregator import date_attributes
from sportstv_analytics.transformation.inference import inferred_sports

logger = structlog.get_logger(__name__)


def _chunks(rows: Sequence[dict], size: int) -> Iterator[Sequence[dict]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _reload(conn: Connection, table, rows: Sequence[dict], chunk_size: int) -> int:
    conn.execute(delete(table))
    for chunk in _chunks(rows, chunk_size):
        conn.execute(insert(table), list(chunk))
    return len(rows)


def country_rows(reference_engine: Engine) -> List[dict]:
    """dim_country rows from the countries reference table"""
    with reference_engine.connect() as conn:
        result = conn.execute(text("SELECT country_id, country FROM countries"))
        return [
            {"country_id": int(country_id), "country_name": str(name)}
            for country_id, name in result
            if country_id is not None and name is not None
        ]


def sport_rows(reference_engine: Engine, extra_sports: Iterable[str] = ()) -> List[dict]:
    """dim_sport rows: catalogue sports plus any sport inference can assign"""
    with reference_engine.connect() as conn:
        result = conn.execute(
            text("SELECT DISTINCT sport FROM assets WHERE sport IS NOT NULL AND sport != '' ORDER BY sport")
        )
        catalogue = [str(sport).strip() for (sport,) in result]

    names: List[str] = []
    for name in list(catalogue) + list(extra_sports):
        if name and name not in names:
            names.append(name)
    return [{"sport_name": name} for name in names]


def date_span(sources: Iterable[TransactionSource]) -> Optional[Tuple[date, date]]:
    """Earliest and latest streaming date across all sources"""
    ranges = [r for r in (source.date_range() for source in sources) if r is not None]
    if not ranges:
        return None
    return min(r[0] for r in ranges), max(r[1] for r in ranges)


def date_rows(start: date, end: date) -> List[dict]:
    """dim_date rows for every day in [start, end]"""
    rows = []
    current = start
    while current <= end:
        attrs = date_attributes(current)
        rows.append({
            "date_id": attrs.date_id,
            "full_date": current,
            "year": attrs.year,
            "quarter": attrs.quarter,
            "month": attrs.month,
            "week": attrs.week,
            "day_of_month": attrs.day_of_month,
            "day_of_week": attrs.day_of_week,
        })
        current += timedelta(days=1)
    return rows


def load_dimensions(
    reference_engine: Engine,
    target_engine: Engine,
    sources: Iterable[TransactionSource],
    chunk_size: int = 500,
) -> Dict[str, int]:
    """
    Reload all dimension tables.

    Args:
        reference_engine: Operational store with countries and assets
        target_engine: Analytics warehouse
        sources: Transaction sources spanning the date dimension
        chunk_size: Rows per insert statement

    Returns:
        Row counts per dimension table

    Raises:
        ReferenceDataError: If reference tables cannot be read
    """
    try:
        countries = country_rows(reference_engine)
        sports = sport_rows(reference_engine, extra_sports=inferred_sports())
    except SQLAlchemyError as e:
        raise ReferenceDataError(f"Cannot read dimension reference data: {e}") from e

    span = date_span(sources)
    dates = date_rows(*span) if span else []

    with target_engine.begin() as conn:
        counts = {
            DimCountry.__tablename__: _reload(conn, DimCountry.__table__, countries, chunk_size),
            DimSport.__tablename__: _reload(conn, DimSport.__table__, sports, chunk_size),
            DimDate.__tablename__: _reload(conn, DimDate.__table__, dates, chunk_size),
        }

    logger.info(
        "Dimension tables loaded",
        date_range=f"{span[0]} to {span[1]}" if span else None,
        **counts,
    )
    return counts
