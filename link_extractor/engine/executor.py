"""Bounded-concurrency fetch, retry and match over one chunk of URLs."""

from __future__ import annotations

import random
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Sequence

import structlog

from ..errors import INVALID_REGEX, FetchError, HTTPError, InvalidRegex
from ..models import Result
from .fetcher import FetchOutcome, Fetcher
from .matcher import Matcher
from .retry import RetryPolicy

ResultCallback = Callable[[Result], None]


@dataclass(slots=True)
class _Attempt:
    index: int
    url: str
    attempt: int


class BatchExecutor:
    """Run Fetcher + RetryPolicy + Matcher over a slice of URLs.

    Every attempt, first tries and retries alike, goes through one thread pool
    sized to ``concurrency``, so the bound applies to attempts in flight rather
    than to distinct URLs. ``run`` returns one :class:`Result` per input URL in
    input order and never raises for a failing URL.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        retry_policy: RetryPolicy | None = None,
        matcher: Matcher | None = None,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.fetcher = fetcher
        self.retry_policy = retry_policy or RetryPolicy()
        self.matcher = matcher or Matcher()
        self.logger = logger or structlog.get_logger("link_extractor.executor")
        self._sleep = sleep
        self._jitter = jitter

    def run(
        self,
        urls: Sequence[str],
        pattern: str,
        concurrency: int,
        delay_ms: int,
        max_retries: int,
        on_result: ResultCallback | None = None,
    ) -> list[Result]:
        if not urls:
            return []
        if not self.matcher.validate(pattern):
            self.logger.warning("invalid_pattern_at_run", pattern=pattern, urls=len(urls))
            results = [Result(url=url, error=INVALID_REGEX) for url in urls]
            for result in results:
                self._notify(on_result, result)
            return results

        resolved: dict[int, Result] = {}
        workers = max(1, min(concurrency, len(urls)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extractor") as pool:
            pending: dict[Future[FetchOutcome], _Attempt] = {}
            for index, url in enumerate(urls):
                delay = self._jitter(0, delay_ms) / 1000 if delay_ms > 0 else 0.0
                pending[pool.submit(self._attempt, url, delay)] = _Attempt(index, url, 0)

            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    ticket = pending.pop(future)
                    outcome = self._outcome_of(future, ticket.url)
                    if self.retry_policy.should_retry(
                        ticket.attempt, max_retries, outcome.status, outcome.error
                    ):
                        self.logger.info(
                            "fetch_retry",
                            url=ticket.url,
                            attempt=ticket.attempt + 1,
                            status=outcome.status,
                            error=outcome.error,
                        )
                        retry = _Attempt(ticket.index, ticket.url, ticket.attempt + 1)
                        pending[pool.submit(self._attempt, ticket.url, self.retry_policy.backoff)] = retry
                        continue
                    result = self._resolve(outcome, pattern, ticket.attempt + 1)
                    resolved[ticket.index] = result
                    self._notify(on_result, result)

        return [resolved[index] for index in range(len(urls))]

    # ------------------------------------------------------------------
    def _attempt(self, url: str, delay: float) -> FetchOutcome:
        if delay > 0:
            self._sleep(delay)
        return self.fetcher.fetch(url)

    def _outcome_of(self, future: Future[FetchOutcome], url: str) -> FetchOutcome:
        try:
            return future.result()
        except Exception as exc:  # noqa: BLE001
            error = FetchError.describe(exc)
            self.logger.warning("fetch_crashed", url=url, error=error)
            return FetchOutcome(url=url, error=error)

    def _resolve(self, outcome: FetchOutcome, pattern: str, attempts: int) -> Result:
        if not self.retry_policy.is_success(outcome.status, outcome.error):
            return Result(
                url=outcome.url,
                http_status=outcome.status,
                error=outcome.error or HTTPError.describe(outcome.status),
                attempts=attempts,
            )
        try:
            matches = self.matcher.find_all(pattern, outcome.body)
        except InvalidRegex:
            return Result(
                url=outcome.url,
                http_status=outcome.status,
                error=INVALID_REGEX,
                attempts=attempts,
            )
        return Result(
            url=outcome.url,
            http_status=outcome.status,
            matches=matches,
            attempts=attempts,
        )

    def _notify(self, callback: ResultCallback | None, result: Result) -> None:
        if callback is None:
            return
        try:
            callback(result)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("result_callback_failed", url=result.url, error=str(exc))


__all__ = ["BatchExecutor", "ResultCallback"]
