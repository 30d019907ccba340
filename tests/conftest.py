"""Shared fixtures: isolated home directory, scripted fetcher, in-memory engine."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Iterable, Sequence

import pytest
import structlog

from link_extractor.config import ConfigLocator, ConfigRepository, GlobalConfig
from link_extractor.engine import BatchExecutor, FetchOutcome, RetryPolicy
from link_extractor.infra import MemoryJobStore
from link_extractor.jobs import JobEngine

# (status, body, error); the last entry of a script repeats forever.
Scripted = tuple[int, str, str]


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Stand-in for :class:`Fetcher` returning scripted outcomes per URL."""

    def __init__(
        self,
        scripts: dict[str, Sequence[Scripted]] | None = None,
        default: Scripted = (200, "", ""),
        latency: float = 0.0,
    ) -> None:
        self.scripts = {url: list(script) for url, script in (scripts or {}).items()}
        self.default = default
        self.latency = latency
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fetch(self, url: str, user_agent: str | None = None) -> FetchOutcome:
        with self._lock:
            self.calls.append(url)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            script = self.scripts.get(url)
            if script:
                status, body, error = script.pop(0) if len(script) > 1 else script[0]
            else:
                status, body, error = self.default
        try:
            if self.latency:
                time.sleep(self.latency)
            return FetchOutcome(url=url, status=status, body=body, error=error)
        finally:
            with self._lock:
                self.in_flight -= 1

    def close(self) -> None:
        return


def _no_sleep(_seconds: float) -> None:
    return


@pytest.fixture(autouse=True)
def extractor_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("LINK_EXTRACTOR_HOME", str(tmp_path))
    monkeypatch.delenv("LINK_EXTRACTOR_PROXY", raising=False)
    return tmp_path


@pytest.fixture
def sample_global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig(
        retry_backoff=0,
        poll_interval=0,
        default_delay_ms=0,
        store_path=tmp_path / "jobs.db",
        outputs_dir=tmp_path / "outputs",
    )


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> Iterable[ConfigRepository]:
    locator = ConfigLocator(project_root=tmp_path)
    yield ConfigRepository(locator)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher(default=(200, "see http://a.com and http://b.com", ""))


@pytest.fixture
def make_executor():
    def _builder(fetcher: FakeFetcher) -> BatchExecutor:
        return BatchExecutor(fetcher, RetryPolicy(backoff=0), sleep=_no_sleep)

    return _builder


@pytest.fixture
def memory_store(fake_clock: FakeClock) -> MemoryJobStore:
    return MemoryJobStore(clock=fake_clock)


@pytest.fixture
def make_engine(sample_global_config: GlobalConfig, memory_store: MemoryJobStore, make_executor):
    def _builder(fetcher: FakeFetcher, store=None, global_config: GlobalConfig | None = None) -> JobEngine:
        return JobEngine(
            store if store is not None else memory_store,
            make_executor(fetcher),
            global_config or sample_global_config,
            logger_factory=lambda job_id: structlog.get_logger("tests").bind(job_id=job_id),
        )

    return _builder


@pytest.fixture
def engine(make_engine, fake_fetcher: FakeFetcher) -> JobEngine:
    return make_engine(fake_fetcher)


@pytest.fixture
def make_fetcher():
    return FakeFetcher
