"""Retry decision for a single URL's fetch attempts."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Fixed-backoff retry budget.

    ``attempt`` is 0-based: the first fetch is attempt 0, so a budget of
    ``max_retries`` allows ``max_retries + 1`` fetches in total.
    """

    backoff: float = 0.25

    @staticmethod
    def is_success(status: int, error: str) -> bool:
        return not error and 200 <= status < 400

    def should_retry(self, attempt: int, max_retries: int, status: int, error: str) -> bool:
        if attempt >= max_retries:
            return False
        return not self.is_success(status, error)


__all__ = ["RetryPolicy"]
