"""
Pipeline exceptions.

Only fatal conditions are raised. Per-record and per-sub-batch problems are
reported through counters and validation checks instead.
"""


class PipelineError(Exception):
    """Base class for fatal pipeline errors"""


class ReferenceDataError(PipelineError):
    """Reference tables could not be read, so no lookups can be built"""


class SourceUnavailableError(PipelineError):
    """A transaction source could not be opened or counted"""


class PipelineCancelled(PipelineError):
    """The cancellation event was set before the next batch was fetched"""
