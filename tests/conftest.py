"""
Test Suite Configuration

Builds a small operational store (reference tables plus streaming_txns), a
matching CSV export and an empty warehouse, all as files under tmp_path.

Fixture data, by source:

    sqlite  8 records: 4 valid (1 via inference), 2 missing country,
            1 missing sport, 1 missing date
    csv     5 records: 3 valid (1 via inference), 1 missing country,
            1 missing sport

Expected fact rows after a full run:

    20240101  Germany      Football     3 txns  90 min  2 completed
    20240101  Switzerland  Ice Hockey   1 txn   45 min  1 completed
    20240102  Austria      Ice Hockey   2 txns  72 min  2 completed
    20240103  Switzerland  Ski Jumping  1 txn   25 min  0 completed
"""
from datetime import date

import polars as pl
import pytest
from sqlalchemy import create_engine, text

from sportstv_analytics.config.settings import (
    DatabaseSettings,
    PipelineSettings,
    Settings,
    SourceSettings,
)
from sportstv_analytics.database.models import Base
from sportstv_analytics.ingestion.reference import ReferenceLookups
from sportstv_analytics.ingestion.sources import (
    CSV_HEADER,
    CsvExportSource,
    OperationalStoreSource,
)


OPERATIONAL_DDL = [
    "CREATE TABLE countries (country_id INTEGER PRIMARY KEY, country TEXT)",
    "CREATE TABLE cities (city_id INTEGER PRIMARY KEY, city TEXT, country_id INTEGER)",
    "CREATE TABLE postal2city (postal_code TEXT PRIMARY KEY, city_id INTEGER)",
    "CREATE TABLE subscribers (user_id INTEGER PRIMARY KEY, postal_code TEXT)",
    "CREATE TABLE assets (asset_id TEXT PRIMARY KEY, sport TEXT)",
    """CREATE TABLE streaming_txns (
        transaction_id INTEGER PRIMARY KEY,
        user_id INTEGER,
        asset_id TEXT,
        streaming_date TEXT,
        minutes_streamed INTEGER,
        completed INTEGER
    )""",
]

OPERATIONAL_ROWS = {
    "countries": [(1, "Germany"), (2, "Switzerland"), (3, "Austria")],
    "cities": [(10, "Berlin", 1), (20, "Zurich", 2), (30, "Vienna", 3)],
    "postal2city": [("10115", 10), ("8001", 20), ("1010", 30)],
    "subscribers": [
        (101, "10115"),
        (102, "10115"),
        (103, "8001"),
        (104, "1010"),
        (105, "99999"),  # postal code without a city
    ],
    "assets": [("A1", "Football"), ("A2", "Ice Hockey"), ("A3", None)],
    "streaming_txns": [
        (1, 101, "A1", "2024-01-01", 30, 1),
        (2, 102, "A1", "2024-01-01", 20, 0),
        (3, 103, "A2", "2024-01-01", 45, 1),
        (4, 104, "DEL-77", "2024-01-02", 60, 1),  # orphaned, inferred
        (5, 105, "A1", "2024-01-02", 10, 0),  # no country
        (6, 101, "XYZ-1", "2024-01-02", 15, 0),  # no sport
        (7, 102, "A1", "not-a-date", 5, 0),  # no date
        (8, 999, "ZZZ-1", "bad", 5, 0),  # no country, no sport, no date
    ],
}

CSV_ROWS = [
    ("c1", "s1", "101", "A1", "2024-01-01", "10:00", "40", "tv", "HD", "TRUE"),
    ("c2", "s3", "103", "SKJ-5", "2024-01-03 08:00:00", "08:00", "25", "mobile", "SD", "FALSE"),
    ("c3", "s4", "104", "A2", "2024-01-02", "21:30", "12.0", "tv", "4K", "1"),
    ("c4", "s0", "", "A1", "2024-01-03", "11:00", "5", "web", "HD", "0"),
    ("c5", "s2", "102", "A3", "2024-01-03", "12:00", "5", "web", "HD", "0"),
]


def _insert_rows(conn, table, rows):
    placeholders = ", ".join(f":p{i}" for i in range(len(rows[0])))
    conn.execute(
        text(f"INSERT INTO {table} VALUES ({placeholders})"),
        [{f"p{i}": value for i, value in enumerate(row)} for row in rows],
    )


def write_csv(path, rows, header=CSV_HEADER, delimiter=","):
    lines = [delimiter.join(header)]
    lines.extend(delimiter.join(row) for row in rows)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def csv_writer():
    """Writes rows as a CSV export: csv_writer(path, rows, delimiter=",")"""
    return write_csv


@pytest.fixture
def operational_path(tmp_path):
    """File path of a populated operational store"""
    path = tmp_path / "subscribers.sqlitedb"
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        for ddl in OPERATIONAL_DDL:
            conn.execute(text(ddl))
        for table, rows in OPERATIONAL_ROWS.items():
            _insert_rows(conn, table, rows)
    engine.dispose()
    return path


@pytest.fixture
def operational_engine(operational_path):
    """Engine on the operational store"""
    engine = create_engine(f"sqlite:///{operational_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def warehouse_path(tmp_path):
    """File path of an empty warehouse with the star schema created"""
    path = tmp_path / "warehouse.sqlitedb"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def warehouse_engine(warehouse_path):
    """Engine on the warehouse"""
    engine = create_engine(f"sqlite:///{warehouse_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def csv_path(tmp_path):
    """CSV export matching the operational store"""
    return write_csv(tmp_path / "streaming.csv", CSV_ROWS)


@pytest.fixture
def sqlite_source(operational_engine) -> OperationalStoreSource:
    return OperationalStoreSource(operational_engine)


@pytest.fixture
def csv_source(csv_path) -> CsvExportSource:
    return CsvExportSource(csv_path)


@pytest.fixture
def test_settings(operational_path, warehouse_path, csv_path) -> Settings:
    """Settings pointing at the fixture files"""
    return Settings(
        database=DatabaseSettings(url=f"sqlite:///{warehouse_path}"),
        sources=SourceSettings(sqlite_path=str(operational_path), csv_path=str(csv_path)),
        pipeline=PipelineSettings(batch_size=3, insert_batch_size=2, dimension_batch_size=2),
    )


@pytest.fixture
def lookups() -> ReferenceLookups:
    """In-memory lookups equivalent to the operational store"""
    return ReferenceLookups.from_pairs(
        asset_sport=[("A1", "Football"), ("A2", "Ice Hockey")],
        user_country=[(101, 1), (102, 1), (103, 2), (104, 3)],
    )


@pytest.fixture
def raw_batch() -> pl.DataFrame:
    """Raw transaction batch covering every resolution path"""
    return pl.DataFrame({
        "transaction_id": ["1", "2", "3", "4", "5", "6"],
        "user_id": ["101", "102", "104", "999", "101", "103"],
        "asset_id": ["A1", "A1", "DEL-1042", "A1", "XYZ-1", "A2"],
        "streaming_date": ["2024-03-01", "2024-03-01", "2024-03-02", "2024-03-01", "2024-03-01", "2024-13-45"],
        "minutes_streamed": [30, None, 60, 10, 10, 10],
        "completed": [1, 0, None, 0, 0, 1],
    }, schema={
        "transaction_id": pl.Utf8,
        "user_id": pl.Utf8,
        "asset_id": pl.Utf8,
        "streaming_date": pl.Utf8,
        "minutes_streamed": pl.Int64,
        "completed": pl.Int64,
    })


@pytest.fixture
def enriched_batch() -> pl.DataFrame:
    """Valid, enriched transactions ready for aggregation"""
    return pl.DataFrame({
        "transaction_id": ["1", "2", "3", "4", "5"],
        "user_id": ["101", "101", "102", "103", "104"],
        "asset_id": ["A1", "A1", "A1", "A2", "DEL-1"],
        "streaming_date": [
            date(2024, 3, 1),
            date(2024, 3, 1),
            date(2024, 3, 1),
            date(2024, 3, 1),
            date(2024, 12, 30),
        ],
        "minutes_streamed": [30, 20, 10, 45, 60],
        "completed": [1, 0, 1, 1, 1],
        "country_id": [1, 1, 1, 2, 3],
        "sport": ["Football", "Football", "Football", "Ice Hockey", "Ice Hockey"],
    })
