"""
Conversion pipeline for rawlinear.

Import ConversionJob from rawlinear.processing.job and BatchDispatcher from
rawlinear.processing.batch; they are not re-exported here so that the io
modules can use the models without an import cycle.
"""

from .models import JobState, JobResult, BatchSummary, RawFile, SourceMetadata
from .rating import is_eligible, RatingFilter

__all__ = [
    "JobState",
    "JobResult",
    "BatchSummary",
    "RawFile",
    "SourceMetadata",
    "is_eligible",
    "RatingFilter",
]
