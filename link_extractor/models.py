"""Job and result records persisted in the job store."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    """Lifecycle derived from the job counters."""

    CREATED = "created"
    RUNNING = "running"
    DONE = "done"


class Result(BaseModel):
    """Outcome for one URL."""

    model_config = ConfigDict(frozen=True)

    url: str
    http_status: int = 0
    error: str = ""
    matches: list[str] = Field(default_factory=list)
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return not self.error and 200 <= self.http_status < 400

    def as_row(self, delimiter: str = "|") -> dict[str, object]:
        """Flatten into the tabular export shape."""

        return {
            "source_url": self.url,
            "http_status": self.http_status,
            "error": self.error,
            "matched_links": delimiter.join(self.matches),
        }


class Job(BaseModel):
    """One submitted batch of URLs plus its pattern, parameters and progress."""

    job_id: str
    pattern: str
    concurrency: int = Field(ge=1)
    delay_ms: int = Field(ge=0)
    max_retries: int = Field(ge=0)
    total: int = Field(ge=0)
    queue: list[str] = Field(default_factory=list)
    history: list[Result] = Field(default_factory=list)
    pending_delta: list[Result] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_counters(self) -> "Job":
        if len(self.history) + len(self.queue) != self.total:
            raise ValueError(
                f"history ({len(self.history)}) + queue ({len(self.queue)}) must equal total ({self.total})"
            )
        return self

    @property
    def completed(self) -> int:
        return len(self.history)

    @property
    def done(self) -> bool:
        return not self.queue

    @property
    def state(self) -> JobState:
        if not self.queue:
            return JobState.DONE
        if not self.history:
            return JobState.CREATED
        return JobState.RUNNING

    @property
    def progress_percent(self) -> float:
        if self.total == 0:
            return 100.0
        return round(100 * self.completed / self.total, 2)


class AdvanceReport(BaseModel):
    """What a single ``advance`` hands back to the poller."""

    job_id: str
    progress_percent: float
    completed: int
    total: int
    new_results: list[Result] = Field(default_factory=list)
    done: bool


class JobSnapshot(BaseModel):
    """A stored job's counters and parameters plus any undelivered results."""

    job_id: str
    state: JobState
    progress_percent: float
    completed: int
    total: int
    concurrency: int
    delay_ms: int
    max_retries: int
    pattern: str
    pending_delta: list[Result] = Field(default_factory=list)
    updated_at: datetime


__all__ = ["AdvanceReport", "Job", "JobSnapshot", "JobState", "Result", "utcnow"]
