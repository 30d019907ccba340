"""Pure state transitions of a job: no IO, no clocks beyond ``updated_at``."""

from __future__ import annotations

import uuid
from typing import Iterable, Sequence

from ..models import AdvanceReport, Job, JobSnapshot, Result, utcnow

JOB_ID_PREFIX = "lre_"


def new_job_id() -> str:
    return f"{JOB_ID_PREFIX}{uuid.uuid4().hex}"


def normalise_urls(urls: Iterable[str]) -> list[str]:
    """Strip blanks and drop repeated URLs, keeping first-seen order."""

    seen: set[str] = set()
    ordered: list[str] = []
    for raw in urls:
        url = (raw or "").strip()
        if not url or url in seen:
            continue
        seen.add(url)
        ordered.append(url)
    return ordered


def new_job(
    urls: Sequence[str],
    pattern: str,
    concurrency: int,
    delay_ms: int,
    max_retries: int,
    job_id: str | None = None,
) -> Job:
    return Job(
        job_id=job_id or new_job_id(),
        pattern=pattern,
        concurrency=concurrency,
        delay_ms=delay_ms,
        max_retries=max_retries,
        total=len(urls),
        queue=list(urls),
    )


def take_chunk(job: Job, chunk_size: int) -> list[str]:
    """Return the next ``chunk_size`` queued URLs without removing them."""

    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    return job.queue[:chunk_size]


def apply_results(job: Job, chunk: Sequence[str], results: Sequence[Result]) -> Job:
    """Return the job with ``chunk`` popped from the queue and ``results`` recorded.

    ``chunk`` must be the current queue prefix and ``results`` must hold one
    entry per chunk URL in the same order.
    """

    if list(chunk) != job.queue[: len(chunk)]:
        raise ValueError("chunk is not the head of the job queue")
    if [result.url for result in results] != list(chunk):
        raise ValueError("results do not line up with the chunk")
    return job.model_copy(
        update={
            "queue": job.queue[len(chunk):],
            "history": [*job.history, *results],
            "pending_delta": list(results),
            "updated_at": utcnow(),
        }
    )


def build_report(job: Job, delta: Sequence[Result]) -> AdvanceReport:
    return AdvanceReport(
        job_id=job.job_id,
        progress_percent=job.progress_percent,
        completed=job.completed,
        total=job.total,
        new_results=list(delta),
        done=job.done,
    )


def missing_report(job_id: str) -> AdvanceReport:
    """Terminal report used when the stored job has vanished."""

    return AdvanceReport(
        job_id=job_id,
        progress_percent=100.0,
        completed=0,
        total=0,
        new_results=[],
        done=True,
    )


def drain_delta(job: Job) -> tuple[Job, list[Result]]:
    """Split off the undelivered delta, returning the cleared job and the delta."""

    return job.model_copy(update={"pending_delta": []}), list(job.pending_delta)


def snapshot_of(job: Job, delta: Sequence[Result] = ()) -> JobSnapshot:
    return JobSnapshot(
        job_id=job.job_id,
        state=job.state,
        progress_percent=job.progress_percent,
        completed=job.completed,
        total=job.total,
        concurrency=job.concurrency,
        delay_ms=job.delay_ms,
        max_retries=job.max_retries,
        pattern=job.pattern,
        pending_delta=list(delta),
        updated_at=job.updated_at,
    )


__all__ = [
    "JOB_ID_PREFIX",
    "apply_results",
    "build_report",
    "drain_delta",
    "missing_report",
    "new_job",
    "new_job_id",
    "normalise_urls",
    "snapshot_of",
    "take_chunk",
]
