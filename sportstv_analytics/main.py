"""
Command-line entry points.

    sportstv-etl              full rebuild of the fact table
    sportstv-load-dimensions  reload dim_country, dim_sport and dim_date only

All options come from the environment (see ``config.settings``).
"""

import signal
import sys
from threading import Event
from typing import List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from sportstv_analytics.config import Settings, get_settings
from sportstv_analytics.config.logging import configure_logging
from sportstv_analytics.database.connection import (
    close_engines,
    create_source_engine,
    create_target_engine,
)
from sportstv_analytics.errors import PipelineError
from sportstv_analytics.ingestion.sources import (
    CsvExportSource,
    OperationalStoreSource,
    TransactionSource,
)
from sportstv_analytics.loading.dimensions import load_dimensions
from sportstv_analytics.pipeline.orchestrator import StreamingSummaryPipeline

logger = structlog.get_logger(__name__)


def build_sources(settings: Settings, source_engine) -> List[TransactionSource]:
    """Sources in processing order: operational store first, then the file export"""
    return [
        OperationalStoreSource(source_engine),
        CsvExportSource(settings.sources.csv_path, delimiter=settings.sources.csv_delimiter),
    ]


def run_pipeline(settings: Optional[Settings] = None, cancel_event: Optional[Event] = None):
    """Connect, run the full rebuild and close connections"""
    settings = settings or get_settings()
    source_engine = create_source_engine(settings)
    try:
        target_engine = create_target_engine(settings)
    except SQLAlchemyError:
        close_engines(source_engine)
        raise

    try:
        pipeline = StreamingSummaryPipeline(
            target_engine=target_engine,
            reference_engine=source_engine,
            sources=build_sources(settings, source_engine),
            batch_size=settings.pipeline.batch_size,
            insert_batch_size=settings.pipeline.insert_batch_size,
            dimension_batch_size=settings.pipeline.dimension_batch_size,
            reload_dimensions=settings.pipeline.load_dimensions,
            cancel_event=cancel_event,
            count_tolerance=settings.pipeline.count_tolerance,
            min_retention_pct=settings.pipeline.min_retention_pct,
        )
        return pipeline.run()
    finally:
        close_engines(source_engine, target_engine)


def main() -> int:
    """Run the full ETL; exit status 1 on fatal errors"""
    configure_logging()
    cancel_event = Event()
    # Ctrl-C stops before the next batch instead of mid-write
    previous_handler = signal.signal(signal.SIGINT, lambda *_: cancel_event.set())

    try:
        report = run_pipeline(cancel_event=cancel_event)
    except (PipelineError, SQLAlchemyError) as e:
        logger.error("ETL run aborted", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if not report.passed:
        logger.warning("ETL finished with failed validation checks")
    return 0


def load_dimensions_main() -> int:
    """Reload the dimension tables only"""
    configure_logging()
    settings = get_settings()

    try:
        source_engine = create_source_engine(settings)
        target_engine = create_target_engine(settings)
    except SQLAlchemyError as e:
        logger.error("Cannot connect", error=str(e))
        return 1

    try:
        load_dimensions(
            source_engine,
            target_engine,
            build_sources(settings, source_engine),
            chunk_size=settings.pipeline.dimension_batch_size,
        )
    except (PipelineError, SQLAlchemyError) as e:
        logger.error("Dimension load aborted", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        close_engines(source_engine, target_engine)
    return 0


if __name__ == "__main__":
    sys.exit(main())
