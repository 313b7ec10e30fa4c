"""
Prefect Workflow Orchestration - Streaming Summary ETL

Scheduled wrapper around the streaming summary pipeline:
- Dimension refresh as a separate, retryable task
- Full fact table rebuild
- Alerting on failed runs and failed validation
"""

from typing import Optional

from prefect import flow, task, get_run_logger

from sportstv_analytics.config import get_settings
from sportstv_analytics.database.connection import (
    close_engines,
    create_source_engine,
    create_target_engine,
)
from sportstv_analytics.loading.dimensions import load_dimensions
from sportstv_analytics.main import build_sources, run_pipeline
from sportstv_analytics.quality.validators import summarize_fact_table


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_dimension_tables",
    description="Reload dim_country, dim_sport and dim_date",
    retries=3,
    retry_delay_seconds=60,
)
def load_dimension_tables() -> dict:
    """Refresh the dimension tables from the operational store"""
    logger = get_run_logger()
    settings = get_settings()

    source_engine = create_source_engine(settings)
    target_engine = create_target_engine(settings)
    try:
        counts = load_dimensions(
            source_engine,
            target_engine,
            build_sources(settings, source_engine),
            chunk_size=settings.pipeline.dimension_batch_size,
        )
    finally:
        close_engines(source_engine, target_engine)

    logger.info(f"Dimension load complete: {counts}")
    return counts


@task(
    name="run_fact_pipeline",
    description="Rebuild fact_streaming_summary from both sources",
    retries=1,
    retry_delay_seconds=300,
)
def run_fact_pipeline() -> dict:
    """Full rebuild of the fact table; dimensions are handled by their own task"""
    logger = get_run_logger()
    settings = get_settings().model_copy(deep=True)
    settings.pipeline.load_dimensions = False

    report = run_pipeline(settings)
    summary = report.summary()
    summary["passed"] = report.passed

    logger.info(
        f"Fact pipeline {summary['state']}: "
        f"{report.totals.valid_records}/{report.totals.records_read} records kept"
    )
    return summary


@task(
    name="send_alert",
    description="Send alert notification",
)
def send_alert(
    alert_type: str,
    message: str,
    severity: str = "info",
) -> None:
    """Send alert notification"""
    logger = get_run_logger()
    logger.warning(f"[{severity.upper()}] {alert_type}: {message}")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="streaming_summary_etl",
    description="Full rebuild of the streaming summary star schema",
)
def streaming_summary_etl(reload_dimensions: Optional[bool] = None) -> dict:
    """
    Streaming summary ETL.

    Steps:
    1. Reload dimension tables (optional)
    2. Rebuild the fact table from the operational store and the CSV export
    3. Alert on failure or failed validation
    """
    logger = get_run_logger()
    settings = get_settings()
    if reload_dimensions is None:
        reload_dimensions = settings.pipeline.load_dimensions

    results = {"steps": {}}

    try:
        if reload_dimensions:
            results["steps"]["dimensions"] = load_dimension_tables()

        fact_result = run_fact_pipeline()
        results["steps"]["facts"] = fact_result

        if not fact_result["passed"]:
            send_alert(
                alert_type="Validation Failed",
                message=f"Fact table checks: {fact_result['validation']}",
                severity="warning",
            )
        results["status"] = "success"

    except Exception as e:
        logger.error(f"ETL pipeline failed: {e}")
        send_alert(
            alert_type="ETL Failed",
            message=f"Streaming summary ETL failed: {e}",
            severity="critical",
        )
        results["status"] = "failed"
        results["error"] = str(e)
        raise

    return results


@flow(
    name="fact_table_profile",
    description="Profile the current fact table",
)
def fact_table_profile(top_n: int = 10) -> dict:
    """Totals and breakdowns of fact_streaming_summary, without reloading"""
    logger = get_run_logger()
    engine = create_target_engine()
    try:
        summary = summarize_fact_table(engine, top_n=top_n)
    finally:
        close_engines(engine)

    logger.info(
        f"Fact table: {summary.fact_rows} rows, "
        f"{summary.total_transactions} transactions, {summary.unique_sports} sports"
    )
    return {
        "fact_rows": summary.fact_rows,
        "total_transactions": summary.total_transactions,
        "total_minutes": summary.total_minutes,
        "years": [summary.min_year, summary.max_year],
        "by_sport": summary.by_sport,
        "top_countries": summary.top_countries,
    }


if __name__ == "__main__":
    streaming_summary_etl()
