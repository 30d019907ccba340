"""Job state machine and the engine that persists it."""

from .engine import JobEngine
from .machine import (
    apply_results,
    build_report,
    drain_delta,
    missing_report,
    new_job,
    normalise_urls,
    snapshot_of,
    take_chunk,
)

__all__ = [
    "JobEngine",
    "apply_results",
    "build_report",
    "drain_delta",
    "missing_report",
    "new_job",
    "normalise_urls",
    "snapshot_of",
    "take_chunk",
]
