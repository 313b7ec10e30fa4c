"""
Pipeline Orchestration Module
"""
from .orchestrator import PipelineReport, PipelineState, StreamingSummaryPipeline

__all__ = [
    "PipelineReport",
    "PipelineState",
    "StreamingSummaryPipeline",
]
