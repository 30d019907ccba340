"""Engine components: matcher, fetcher, retry policy, batch executor, exporter."""

from .executor import BatchExecutor
from .exporter import ResultExporter
from .fetcher import FetchOutcome, Fetcher
from .matcher import Matcher, compile_pattern
from .retry import RetryPolicy

__all__ = [
    "BatchExecutor",
    "FetchOutcome",
    "Fetcher",
    "Matcher",
    "ResultExporter",
    "RetryPolicy",
    "compile_pattern",
]
