"""
Streaming Summary Pipeline

Sequences a full rebuild of fact_streaming_summary:

    INIT -> LOOKUPS_BUILT -> PROCESSING_SOURCE_1 -> PROCESSING_SOURCE_2
         -> FINALIZING -> VALIDATED -> DONE

Each source is read batch by batch and every batch runs through
enrichment, aggregation and the upsert merge. Statistics are folded into
totals owned by the pipeline instance; nothing is kept at module level.

A fatal error leaves ``state`` at the stage that failed. The fact table is
cleared at the start of every run, so a rerun is a full rebuild.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Event
from typing import Any, Dict, List, Optional, Sequence
import time

import structlog
from sqlalchemy.engine import Engine

from sportstv_analytics.ingestion.reference import ReferenceLookups, build_reference_lookups
from sportstv_analytics.ingestion.sources import TransactionSource
from sportstv_analytics.loading.dimensions import load_dimensions
from sportstv_analytics.loading.merger import UpsertMerger
from sportstv_analytics.quality.validators import (
    FactTableSummary,
    FactTableValidator,
    ValidationResult,
    summarize_fact_table,
)
from sportstv_analytics.transformation.aggregator import aggregate_daily, total_transactions
from sportstv_analytics.transformation.inference import infer_sport
from sportstv_analytics.transformation.processor import BatchProcessor, BatchStats

logger = structlog.get_logger(__name__)


class PipelineState(str, Enum):
    """Stages of a pipeline run"""
    INIT = "init"
    LOOKUPS_BUILT = "lookups_built"
    PROCESSING_SOURCE_1 = "processing_source_1"
    PROCESSING_SOURCE_2 = "processing_source_2"
    FINALIZING = "finalizing"
    VALIDATED = "validated"
    DONE = "done"


PROCESSING_STATES = (PipelineState.PROCESSING_SOURCE_1, PipelineState.PROCESSING_SOURCE_2)


@dataclass
class StepTiming:
    """Duration of one pipeline step"""
    step: str
    duration_seconds: float
    records_processed: Optional[int] = None

    @property
    def records_per_second(self) -> Optional[float]:
        if not self.records_processed or self.duration_seconds <= 0:
            return None
        return self.records_processed / self.duration_seconds


@dataclass
class PipelineReport:
    """End-of-run report"""
    started_at: datetime
    completed_at: Optional[datetime] = None
    state: PipelineState = PipelineState.INIT
    sources: Dict[str, BatchStats] = field(default_factory=dict)
    totals: BatchStats = field(default_factory=BatchStats)
    dimension_rows: Dict[str, int] = field(default_factory=dict)
    averaged_rows: int = 0
    write_errors: List[str] = field(default_factory=list)
    validation: Optional[ValidationResult] = None
    fact_summary: Optional[FactTableSummary] = None
    timings: List[StepTiming] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def passed(self) -> bool:
        return self.validation is not None and self.validation.failed_checks == 0

    def summary(self) -> Dict[str, Any]:
        """Flat, log-friendly view of the report"""
        def counters(stats: BatchStats) -> Dict[str, Any]:
            return {
                "total_read": stats.records_read,
                "valid_records": stats.valid_records,
                "retention_pct": round(stats.retention_rate, 1),
                "dropped_missing_country": stats.missing_country,
                "dropped_missing_sport": stats.missing_sport,
                "dropped_missing_date": stats.missing_date,
                "inferred_sport": stats.inferred_sport,
                "fact_rows_written": stats.fact_rows_written,
                "fact_rows_failed": stats.fact_rows_failed,
            }

        return {
            "state": self.state.value,
            "duration_seconds": round(self.duration_seconds, 2),
            "sources": {name: counters(stats) for name, stats in self.sources.items()},
            "totals": counters(self.totals),
            "dimension_rows": self.dimension_rows,
            "averaged_rows": self.averaged_rows,
            "write_errors": len(self.write_errors),
            "validation": None if self.validation is None else {
                "status": self.validation.status.value,
                "checks": {c.name: "PASS" if c.passed else "FAIL" for c in self.validation.checks},
            },
            "timings": [
                {
                    "step": t.step,
                    "duration_seconds": round(t.duration_seconds, 3),
                    "records_per_second": (
                        None if t.records_per_second is None else round(t.records_per_second, 1)
                    ),
                }
                for t in self.timings
            ],
        }


class StreamingSummaryPipeline:
    """
    Full-rebuild ETL for the streaming summary star schema.

    Example:
        pipeline = StreamingSummaryPipeline(
            target_engine=warehouse,
            reference_engine=operational,
            sources=[OperationalStoreSource(operational), CsvExportSource(csv_path)],
        )
        report = pipeline.run()
    """

    def __init__(
        self,
        target_engine: Engine,
        reference_engine: Engine,
        sources: Sequence[TransactionSource],
        batch_size: int = 50_000,
        insert_batch_size: int = 500,
        dimension_batch_size: int = 500,
        reload_dimensions: bool = True,
        cancel_event: Optional[Event] = None,
        inference=infer_sport,
        count_tolerance: int = 0,
        min_retention_pct: float = 50.0,
    ):
        if len(sources) != len(PROCESSING_STATES):
            raise ValueError(
                f"Expected {len(PROCESSING_STATES)} sources (operational store, file export), "
                f"got {len(sources)}"
            )
        self.target_engine = target_engine
        self.reference_engine = reference_engine
        self.sources = list(sources)
        self.batch_size = batch_size
        self.dimension_batch_size = dimension_batch_size
        self.reload_dimensions = reload_dimensions
        self.cancel_event = cancel_event or Event()
        self.inference = inference
        self.count_tolerance = count_tolerance
        self.min_retention_pct = min_retention_pct
        self.merger = UpsertMerger(target_engine, sub_batch_size=insert_batch_size)
        self.state = PipelineState.INIT
        self.lookups: Optional[ReferenceLookups] = None

    def _transition(self, state: PipelineState) -> None:
        logger.info("Pipeline state change", previous=self.state.value, state=state.value)
        self.state = state

    def cancel(self) -> None:
        """Request cancellation; honoured before the next batch is pulled"""
        self.cancel_event.set()

    def process_source(
        self,
        source: TransactionSource,
        processor: BatchProcessor,
        write_errors: List[str],
        start_offset: int = 0,
    ) -> BatchStats:
        """
        Run every batch of one source through process -> aggregate -> merge.

        Returns:
            BatchStats folded over all batches of the source
        """
        total = BatchStats()
        source_log = logger.bind(source=source.name)
        source_log.info("Processing source", records=source.count())

        batches = source.iter_batches(
            self.batch_size,
            start_offset=start_offset,
            cancel_event=self.cancel_event,
        )
        for batch in batches:
            started = time.perf_counter()

            processed = processor.process(batch.frame)
            summaries = aggregate_daily(processed.enriched)
            merged = self.merger.merge(summaries)
            write_errors.extend(merged.errors)

            batch_stats = processed.stats + BatchStats(
                fact_rows_written=merged.rows_written,
                fact_rows_failed=merged.rows_failed,
                failed_sub_batches=merged.failed_sub_batches,
            )
            total = total + batch_stats

            source_log.info(
                "Batch processed",
                batch=batch.number,
                first_row=batch.offset + 1,
                last_row=batch.offset + batch.size,
                valid=batch_stats.valid_records,
                missing_country=batch_stats.missing_country,
                missing_sport=batch_stats.missing_sport,
                missing_date=batch_stats.missing_date,
                inferred_sport=batch_stats.inferred_sport,
                groups=len(summaries),
                transactions=total_transactions(summaries),
                failed_sub_batches=merged.failed_sub_batches,
                duration_seconds=round(time.perf_counter() - started, 2),
            )

        source_log.info(
            "Source complete",
            total_read=total.records_read,
            valid_records=total.valid_records,
            retention_pct=round(total.retention_rate, 1),
            fact_rows_written=total.fact_rows_written,
        )
        return total

    def run(self) -> PipelineReport:
        """
        Execute the full rebuild.

        Raises:
            ReferenceDataError: Lookups cannot be built
            SourceUnavailableError: A source cannot be read
            PipelineCancelled: The cancel event was set before a batch fetch
        """
        report = PipelineReport(started_at=datetime.utcnow())
        self.state = PipelineState.INIT
        logger.info("Starting streaming summary ETL", sources=[s.name for s in self.sources])

        # INIT: reset fact table, refresh dimensions
        step = time.perf_counter()
        self.merger.clear()
        if self.reload_dimensions:
            report.dimension_rows = load_dimensions(
                self.reference_engine,
                self.target_engine,
                self.sources,
                chunk_size=self.dimension_batch_size,
            )
        report.timings.append(StepTiming("Clear and load dimensions", time.perf_counter() - step))

        step = time.perf_counter()
        self.lookups = build_reference_lookups(self.reference_engine)
        processor = BatchProcessor(self.lookups, inference=self.inference)
        self._transition(PipelineState.LOOKUPS_BUILT)
        report.timings.append(StepTiming("Build lookups", time.perf_counter() - step))

        for source, state in zip(self.sources, PROCESSING_STATES):
            self._transition(state)
            step = time.perf_counter()
            stats = self.process_source(source, processor, report.write_errors)
            report.sources[source.name] = stats
            report.totals = report.totals + stats
            report.timings.append(
                StepTiming(f"{source.name} processing", time.perf_counter() - step, stats.valid_records)
            )

        self._transition(PipelineState.FINALIZING)
        step = time.perf_counter()
        report.averaged_rows = self.merger.finalize_averages()
        report.timings.append(StepTiming("Calculate averages", time.perf_counter() - step))

        step = time.perf_counter()
        source_recount = sum(source.count() for source in self.sources)
        validator = FactTableValidator(
            self.target_engine,
            count_tolerance=self.count_tolerance,
            min_retention_pct=self.min_retention_pct,
        )
        report.validation = validator.validate(
            source_recount=source_recount,
            stats=report.totals,
            write_errors=report.write_errors,
        )
        report.fact_summary = summarize_fact_table(self.target_engine)
        self._transition(PipelineState.VALIDATED)
        report.timings.append(StepTiming("Validation", time.perf_counter() - step))

        self._transition(PipelineState.DONE)
        report.state = self.state
        report.completed_at = datetime.utcnow()

        logger.info("ETL process complete", **report.summary())
        return report
