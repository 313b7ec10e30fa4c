"""
Database Models - Star Schema Design

Target warehouse layout for streaming viewership analytics:

Fact Tables:
- FactStreamingSummary: Daily viewership per (date, country, sport)

Dimension Tables:
- DimDate: Calendar attributes keyed by YYYYMMDD
- DimCountry: Countries from the operational store
- DimSport: Sports from the asset catalogue and the inference taxonomy

The schema itself is created outside the pipeline; these models are used to
build statements against it.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Date,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimDate(Base):
    """
    Date Dimension Table

    One row per calendar day between the first and last streaming date.
    """
    __tablename__ = "dim_date"

    date_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)  # YYYYMMDD
    full_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)  # ISO-8601
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 1=Sunday

    __table_args__ = (
        Index("idx_dim_date_year_month", "year", "month"),
        Index("idx_dim_date_year_quarter", "year", "quarter"),
        Index("idx_dim_date_year_week", "year", "week"),
    )


class DimCountry(Base):
    """Country Dimension Table"""
    __tablename__ = "dim_country"

    country_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    country_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)


class DimSport(Base):
    """Sport Dimension Table"""
    __tablename__ = "dim_sport"

    sport_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sport_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


# =============================================================================
# FACT TABLES
# =============================================================================

class FactStreamingSummary(Base):
    """
    Streaming Summary Fact Table

    Grain: one row per (date, country, sport). sport_name is denormalized so
    common queries need no join. Additive measures accumulate across batches
    and sources; avg_minutes_per_stream is derived once at the end of a run.
    """
    __tablename__ = "fact_streaming_summary"

    date_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    country_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    sport_name: Mapped[str] = mapped_column(String(100), primary_key=True)

    # Measures
    transaction_count: Mapped[int] = mapped_column(Integer, default=0)
    unique_user_count: Mapped[int] = mapped_column(Integer, default=0)
    total_minutes_streamed: Mapped[int] = mapped_column(Integer, default=0)
    completed_streams: Mapped[int] = mapped_column(Integer, default=0)
    avg_minutes_per_stream: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)

    # Denormalized calendar attributes
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_fact_country", "country_id"),
        Index("idx_fact_sport", "sport_name"),
        Index("idx_fact_year_month", "year", "month"),
        Index("idx_fact_year_quarter", "year", "quarter"),
        Index("idx_fact_year_week", "year", "week"),
        Index("idx_fact_full_coverage", "year", "month", "country_id", "sport_name"),
    )


# Measures that accumulate on key conflict
ADDITIVE_MEASURES = (
    "transaction_count",
    "unique_user_count",
    "total_minutes_streamed",
    "completed_streams",
)
