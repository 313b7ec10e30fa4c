"""
Data Validation Module

End-of-run quality checks on the streaming fact table.

Checks are advisory: by the time they run every write has landed, so a
failed check is reported and never raised.

Features:
- Source recount and retention accounting
- Minimum retention rate warning
- Transaction total reconciliation
- Null checks on the key columns
- ISO week range check
- Upsert failure reporting
- Fact table profiling
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from sportstv_analytics.database.models import DimCountry, FactStreamingSummary
from sportstv_analytics.transformation.processor import BatchStats

logger = structlog.get_logger(__name__)

fact = FactStreamingSummary.__table__


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Data is wrong or incomplete
    WARNING = "warning"  # Suspicious but explainable


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def check(self, name: str) -> Optional[ValidationCheck]:
        """Look up a check by name"""
        return next((c for c in self.checks if c.name == name), None)


@dataclass
class FactTableSummary:
    """Profile of the fact table after a run"""
    fact_rows: int
    total_transactions: int
    total_minutes: int
    total_user_sessions: int
    unique_dates: int
    unique_countries: int
    unique_sports: int
    min_year: Optional[int]
    max_year: Optional[int]
    by_sport: List[Dict[str, Any]] = field(default_factory=list)
    by_year: List[Dict[str, Any]] = field(default_factory=list)
    top_countries: List[Dict[str, Any]] = field(default_factory=list)


class FactTableValidator:
    """
    Validates fact_streaming_summary against the run's own accounting.

    Example:
        validator = FactTableValidator(engine)
        result = validator.validate(source_recount=1_180_000, stats=total_stats)
        result.status  # ValidationStatus.PASSED
    """

    def __init__(self, engine: Engine, count_tolerance: int = 0, min_retention_pct: float = 50.0):
        self.engine = engine
        self.count_tolerance = count_tolerance
        self.min_retention_pct = min_retention_pct

    def _scalar(self, query) -> Any:
        with self.engine.connect() as conn:
            return conn.execute(query).scalar()

    def _check_source_recount(self, source_recount: int, stats: BatchStats) -> ValidationCheck:
        passed = source_recount == stats.records_read
        return ValidationCheck(
            name="source_recount",
            passed=passed,
            severity=ValidationSeverity.ERROR,
            message=(
                f"Read {stats.records_read} records, sources hold {source_recount}"
                if not passed else "Every source record was read"
            ),
            details={"source_recount": source_recount, "records_read": stats.records_read},
        )

    def _check_retention(self, stats: BatchStats) -> ValidationCheck:
        return ValidationCheck(
            name="retention_accounting",
            passed=stats.is_balanced,
            severity=ValidationSeverity.ERROR,
            message=(
                "Read records equal valid plus dropped records"
                if stats.is_balanced else "Some records are unaccounted for"
            ),
            details={
                "records_read": stats.records_read,
                "valid_records": stats.valid_records,
                "missing_country": stats.missing_country,
                "missing_sport": stats.missing_sport,
                "missing_date": stats.missing_date,
                "retention_rate": round(stats.retention_rate, 2),
            },
        )

    def _check_retention_rate(self, stats: BatchStats) -> ValidationCheck:
        rate = stats.retention_rate
        passed = rate >= self.min_retention_pct
        return ValidationCheck(
            name="retention_rate",
            passed=passed,
            severity=ValidationSeverity.WARNING,
            message=(
                f"Retention {rate:.1f}% is at or above {self.min_retention_pct:.1f}%"
                if passed else f"Retention {rate:.1f}% is below {self.min_retention_pct:.1f}%"
            ),
            details={"retention_rate": round(rate, 2), "min_retention_pct": self.min_retention_pct},
        )

    def _check_transaction_total(self, source_total: int, stats: BatchStats) -> ValidationCheck:
        fact_total = int(self._scalar(select(func.coalesce(func.sum(fact.c.transaction_count), 0))))
        difference = fact_total - stats.valid_records
        passed = abs(difference) <= self.count_tolerance
        source_gap = source_total - fact_total
        return ValidationCheck(
            name="transaction_total",
            passed=passed,
            severity=ValidationSeverity.ERROR,
            message=(
                "Fact transactions match valid records"
                if passed else f"Fact transactions differ from valid records by {difference}"
            ),
            details={
                "fact_total": fact_total,
                "valid_records": stats.valid_records,
                "source_total": source_total,
                "source_difference": source_gap,
                "source_difference_pct": round(100 * source_gap / source_total, 2) if source_total else 0.0,
            },
        )

    def _check_not_null(self, column: str) -> ValidationCheck:
        null_count = int(self._scalar(
            select(func.count()).select_from(fact).where(fact.c[column].is_(None))
        ))
        passed = null_count == 0
        return ValidationCheck(
            name=f"not_null_{column}",
            passed=passed,
            severity=ValidationSeverity.ERROR,
            message=(
                f"Column '{column}' has {null_count} null values"
                if not passed else f"Column '{column}' has no null values"
            ),
            details={"null_count": null_count},
        )

    def _check_week_range(self) -> ValidationCheck:
        with self.engine.connect() as conn:
            min_week, max_week, unique_weeks = conn.execute(
                select(
                    func.min(fact.c.week),
                    func.max(fact.c.week),
                    func.count(func.distinct(fact.c.week)),
                )
            ).one()

        passed = min_week is None or (min_week >= 1 and max_week <= 53)
        return ValidationCheck(
            name="week_range",
            passed=passed,
            severity=ValidationSeverity.ERROR,
            message=(
                "Week numbers within valid range (1-53)"
                if passed else f"Week numbers outside 1-53: {min_week} to {max_week}"
            ),
            details={"min_week": min_week, "max_week": max_week, "unique_weeks": unique_weeks},
        )

    def _check_writes(self, write_errors: Sequence[str]) -> ValidationCheck:
        passed = not write_errors
        return ValidationCheck(
            name="sub_batch_writes",
            passed=passed,
            severity=ValidationSeverity.ERROR,
            message=(
                "All upsert sub-batches succeeded"
                if passed else f"{len(write_errors)} upsert sub-batches failed"
            ),
            details={"errors": list(write_errors[:10])} if write_errors else None,
        )

    def validate(
        self,
        source_recount: int,
        stats: BatchStats,
        write_errors: Sequence[str] = (),
    ) -> ValidationResult:
        """
        Run all checks.

        Args:
            source_recount: Records counted afresh across all sources
            stats: Totals accumulated during the run
            write_errors: Messages of failed upsert sub-batches

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()

        check_funcs: List[Callable[[], ValidationCheck]] = [
            lambda: self._check_source_recount(source_recount, stats),
            lambda: self._check_retention(stats),
            lambda: self._check_retention_rate(stats),
            lambda: self._check_transaction_total(source_recount, stats),
            lambda: self._check_not_null("date_id"),
            lambda: self._check_not_null("country_id"),
            lambda: self._check_not_null("sport_name"),
            self._check_week_range,
            lambda: self._check_writes(write_errors),
        ]

        results = []
        for check_func in check_funcs:
            result = check_func()
            results.append(result)
            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

        logger.info(
            f"Validation complete: {status.value}",
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


def summarize_fact_table(engine: Engine, top_n: int = 10) -> FactTableSummary:
    """Profile the fact table: totals, distinct dimensions and breakdowns"""
    totals_query = select(
        func.count().label("fact_rows"),
        func.coalesce(func.sum(fact.c.transaction_count), 0).label("total_transactions"),
        func.coalesce(func.sum(fact.c.total_minutes_streamed), 0).label("total_minutes"),
        func.coalesce(func.sum(fact.c.unique_user_count), 0).label("total_user_sessions"),
        func.count(func.distinct(fact.c.date_id)).label("unique_dates"),
        func.count(func.distinct(fact.c.country_id)).label("unique_countries"),
        func.count(func.distinct(fact.c.sport_name)).label("unique_sports"),
        func.min(fact.c.year).label("min_year"),
        func.max(fact.c.year).label("max_year"),
    ).select_from(fact)

    transactions = func.sum(fact.c.transaction_count).label("transactions")
    minutes = func.sum(fact.c.total_minutes_streamed).label("minutes")

    by_sport_query = (
        select(
            fact.c.sport_name,
            transactions,
            minutes,
            func.round(func.avg(fact.c.avg_minutes_per_stream), 2).label("avg_mins"),
        )
        .group_by(fact.c.sport_name)
        .order_by(transactions.desc())
    )

    by_year_query = (
        select(
            fact.c.year,
            transactions,
            minutes,
            func.count(func.distinct(fact.c.country_id)).label("countries"),
            func.count(func.distinct(fact.c.sport_name)).label("sports"),
        )
        .group_by(fact.c.year)
        .order_by(fact.c.year)
    )

    country = DimCountry.__table__
    top_countries_query = (
        select(country.c.country_name, transactions, minutes)
        .select_from(fact.join(country, fact.c.country_id == country.c.country_id))
        .group_by(country.c.country_name)
        .order_by(transactions.desc())
        .limit(top_n)
    )

    with engine.connect() as conn:
        totals = conn.execute(totals_query).mappings().one()
        by_sport = [dict(r) for r in conn.execute(by_sport_query).mappings()]
        by_year = [dict(r) for r in conn.execute(by_year_query).mappings()]
        top_countries = [dict(r) for r in conn.execute(top_countries_query).mappings()]

    return FactTableSummary(
        fact_rows=int(totals["fact_rows"]),
        total_transactions=int(totals["total_transactions"]),
        total_minutes=int(totals["total_minutes"]),
        total_user_sessions=int(totals["total_user_sessions"]),
        unique_dates=int(totals["unique_dates"]),
        unique_countries=int(totals["unique_countries"]),
        unique_sports=int(totals["unique_sports"]),
        min_year=totals["min_year"],
        max_year=totals["max_year"],
        by_sport=by_sport,
        by_year=by_year,
        top_countries=top_countries,
    )
