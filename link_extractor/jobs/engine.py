"""Job engine: create, advance, inspect and export resumable extraction jobs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable
from urllib.parse import urlparse

import structlog

from ..config import ChunkPolicy, GlobalConfig
from ..engine import BatchExecutor, Matcher
from ..engine.executor import ResultCallback
from ..errors import InvalidInput, JobNotFound
from ..infra.locks import JobLocks
from ..logging_conf import job_logger
from ..models import AdvanceReport, Job, JobSnapshot, Result
from . import machine

if TYPE_CHECKING:
    from ..infra.storage import JobStore

LoggerFactory = Callable[[str], structlog.BoundLogger]


class JobEngine:
    """Drive jobs kept in an external store, one chunk per ``advance`` call.

    Nothing about a job is remembered between calls: each ``advance`` loads the
    stored state, runs the next chunk through the :class:`BatchExecutor` and
    writes the new state back with a version-checked compare-and-swap. Calls
    on the same job id are serialized in-process by :class:`JobLocks`; if a
    writer in another process wins the race, the losing call drops its
    results and reports the stored state with an empty delta.
    """

    def __init__(
        self,
        store: "JobStore",
        executor: BatchExecutor,
        global_config: GlobalConfig | None = None,
        locks: JobLocks | None = None,
        logger_factory: LoggerFactory = job_logger,
    ) -> None:
        self.store = store
        self.executor = executor
        self.global_config = global_config or GlobalConfig()
        self.locks = locks or JobLocks()
        self._logger_factory = logger_factory
        self.logger = structlog.get_logger("link_extractor.jobs").bind(component="job_engine")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create_job(
        self,
        urls: Iterable[str],
        pattern: str,
        concurrency: int | None = None,
        delay_ms: int | None = None,
        max_retries: int | None = None,
    ) -> str:
        cfg = self.global_config
        concurrency = cfg.default_concurrency if concurrency is None else concurrency
        delay_ms = cfg.default_delay_ms if delay_ms is None else delay_ms
        max_retries = cfg.default_max_retries if max_retries is None else max_retries

        queue = machine.normalise_urls(urls)
        if not queue:
            raise InvalidInput("No URLs provided")
        malformed = [url for url in queue if not self._is_absolute_http(url)]
        if malformed:
            raise InvalidInput(
                f"{len(malformed)} URL(s) are not absolute http(s) URLs",
                details={"urls": malformed[:5]},
            )
        if not pattern or not Matcher.validate(pattern):
            raise InvalidInput("Invalid regex pattern", details={"pattern": pattern})
        if not 1 <= concurrency <= cfg.max_concurrency:
            raise InvalidInput(f"concurrency must be between 1 and {cfg.max_concurrency}")
        if delay_ms < 0:
            raise InvalidInput("delay_ms must be >= 0")
        if max_retries < 0:
            raise InvalidInput("max_retries must be >= 0")

        job = machine.new_job(queue, pattern, concurrency, delay_ms, max_retries)
        self.store.set(job, cfg.job_ttl_seconds)
        self._logger_factory(job.job_id).info(
            "job_created",
            total=job.total,
            concurrency=concurrency,
            delay_ms=delay_ms,
            max_retries=max_retries,
        )
        return job.job_id

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------
    def chunk_size_for(self, concurrency: int, policy: ChunkPolicy | None = None) -> int:
        """Resolve a chunk policy into a concrete chunk size for a job."""

        policy = policy or self.global_config.chunk_policy
        if policy is ChunkPolicy.SINGLE:
            return 1
        return concurrency

    def advance(
        self,
        job_id: str,
        chunk_size: int | None = None,
        on_result: ResultCallback | None = None,
    ) -> AdvanceReport:
        """Process the next chunk of ``job_id`` and return counters plus the delta.

        Raises :class:`JobNotFound` when the job is missing or expired. A job
        whose queue is already empty is left untouched and reported as done.
        """

        if chunk_size is not None and chunk_size < 1:
            raise InvalidInput("chunk_size must be >= 1")
        with self.locks.hold(job_id):
            job = self._load(job_id)
            if job.done:
                return machine.build_report(job, [])

            log = self._logger_factory(job_id)
            size = chunk_size or self.chunk_size_for(job.concurrency)
            chunk = machine.take_chunk(job, size)
            log.info("chunk_started", size=len(chunk), completed=job.completed, total=job.total)
            results = self.executor.run(
                chunk,
                job.pattern,
                job.concurrency,
                job.delay_ms,
                job.max_retries,
                on_result=on_result,
            )
            updated, delta = machine.drain_delta(machine.apply_results(job, chunk, results))
            ttl = self.global_config.job_ttl_seconds
            if not self.store.compare_and_set(updated, job.version, ttl):
                log.warning("advance_conflict", expected_version=job.version)
                return machine.build_report(self._load(job_id), [])

            log.info(
                "chunk_completed",
                size=len(results),
                failed=sum(1 for result in results if not result.ok),
                completed=updated.completed,
                total=updated.total,
            )
            return machine.build_report(updated, delta)

    def poll(
        self,
        job_id: str,
        chunk_size: int | None = None,
        on_result: ResultCallback | None = None,
    ) -> AdvanceReport:
        """``advance`` that reports a vanished job as finished instead of raising."""

        try:
            return self.advance(job_id, chunk_size, on_result=on_result)
        except JobNotFound:
            return machine.missing_report(job_id)

    def snapshot(self, job_id: str) -> JobSnapshot:
        """Describe the stored job and hand over any results not yet delivered.

        ``advance`` delivers its delta directly, so the snapshot delta is only
        non-empty for a job stored with an undelivered delta. Once returned
        here the delta is cleared from the store.
        """

        with self.locks.hold(job_id):
            job = self._load(job_id)
            if not job.pending_delta:
                return machine.snapshot_of(job)
            drained, delta = machine.drain_delta(job)
            if not self.store.compare_and_set(drained, job.version, self.global_config.job_ttl_seconds):
                self.logger.warning("snapshot_conflict", job_id=job_id, expected_version=job.version)
                return machine.snapshot_of(job)
            return machine.snapshot_of(drained, delta)

    def finalize(self, job_id: str) -> list[Result]:
        """Return every result accumulated so far; unfinished jobs export partially."""

        return list(self._load(job_id).history)

    def purge_expired(self) -> int:
        return self.store.purge_expired()

    # ------------------------------------------------------------------
    def _load(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job is None:
            self.logger.info("job_missing", job_id=job_id)
            raise JobNotFound(job_id)
        return job

    @staticmethod
    def _is_absolute_http(url: str) -> bool:
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)


__all__ = ["JobEngine", "LoggerFactory"]
