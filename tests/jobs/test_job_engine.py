from __future__ import annotations

import threading

import pytest

from link_extractor.config import ChunkPolicy
from link_extractor.errors import InvalidInput, JobNotFound
from link_extractor.infra import SQLiteJobStore
from link_extractor.jobs import machine
from link_extractor.models import JobState, Result

PATTERN = r"https?://[a-z.]+"


def urls(count: int) -> list[str]:
    return [f"https://site{i}.test/page" for i in range(count)]


@pytest.mark.parametrize(
    ("batch", "pattern"),
    [
        ([], PATTERN),
        (["https://a.test/"], ""),
        (["https://a.test/"], "(unbalanced"),
        (["not a url"], PATTERN),
        (["ftp://files.test/x"], PATTERN),
    ],
)
def test_create_job_rejects_bad_input(engine, fake_fetcher, memory_store, batch, pattern) -> None:
    with pytest.raises(InvalidInput):
        engine.create_job(batch, pattern)
    assert fake_fetcher.calls == []
    assert memory_store._entries == {}


@pytest.mark.parametrize(
    "overrides",
    [{"concurrency": 0}, {"concurrency": 21}, {"delay_ms": -1}, {"max_retries": -1}],
)
def test_create_job_rejects_out_of_range_parameters(engine, overrides) -> None:
    with pytest.raises(InvalidInput):
        engine.create_job(urls(2), PATTERN, **overrides)


def test_create_job_applies_defaults_and_deduplicates(engine, sample_global_config) -> None:
    batch = ["https://a.test/", " https://b.test/ ", "https://a.test/", ""]
    job_id = engine.create_job(batch, PATTERN)
    snapshot = engine.snapshot(job_id)

    assert job_id.startswith("lre_")
    assert snapshot.total == 2
    assert snapshot.completed == 0
    assert snapshot.state is JobState.CREATED
    assert snapshot.concurrency == sample_global_config.default_concurrency
    assert snapshot.max_retries == sample_global_config.default_max_retries
    assert snapshot.pattern == PATTERN


def test_three_single_url_advances(engine) -> None:
    job_id = engine.create_job(urls(3), PATTERN, concurrency=2)
    reports = [engine.advance(job_id, chunk_size=1) for _ in range(3)]

    assert [report.done for report in reports] == [False, False, True]
    assert [report.completed for report in reports] == [1, 2, 3]
    assert [report.progress_percent for report in reports] == [33.33, 66.67, 100.0]
    assert all(len(report.new_results) == 1 for report in reports)
    assert all(report.total == 3 for report in reports)


def test_counters_hold_and_no_url_repeats_with_uneven_chunks(engine, memory_store) -> None:
    batch = urls(7)
    job_id = engine.create_job(batch, PATTERN, concurrency=3)
    deltas: list[str] = []
    while True:
        report = engine.advance(job_id, chunk_size=3)
        stored = memory_store.get(job_id)
        assert stored.total == 7
        assert stored.completed + len(stored.queue) == stored.total
        assert len(stored.history) == report.completed
        deltas.extend(result.url for result in report.new_results)
        if report.done:
            break

    history = [result.url for result in engine.finalize(job_id)]
    assert history == batch
    assert deltas == batch
    assert len(set(history)) == len(history)


def test_advance_on_terminal_job_is_a_no_op(engine, memory_store, fake_fetcher) -> None:
    job_id = engine.create_job(urls(2), PATTERN)
    engine.advance(job_id, chunk_size=5)
    before = memory_store.get(job_id)
    calls = len(fake_fetcher.calls)

    report = engine.advance(job_id, chunk_size=5)
    after = memory_store.get(job_id)

    assert report.done is True
    assert report.new_results == []
    assert report.completed == 2
    assert after.version == before.version
    assert after.history == before.history
    assert len(fake_fetcher.calls) == calls


def test_finalize_mid_progress_returns_history_so_far(engine) -> None:
    job_id = engine.create_job(urls(5), PATTERN)
    engine.advance(job_id, chunk_size=2)
    results = engine.finalize(job_id)

    assert len(results) == 2
    assert len(results) == engine.snapshot(job_id).completed
    assert results[0].matches == ["http://a.com", "http://b.com"]


def test_snapshot_reports_state_without_replaying_delivered_results(engine) -> None:
    job_id = engine.create_job(urls(3), PATTERN)
    assert engine.snapshot(job_id).state is JobState.CREATED

    report = engine.advance(job_id, chunk_size=1)
    assert [result.url for result in report.new_results] == [urls(3)[0]]
    snapshot = engine.snapshot(job_id)
    assert snapshot.state is JobState.RUNNING
    assert snapshot.completed == 1
    assert snapshot.pending_delta == []
    assert engine.snapshot(job_id).pending_delta == []

    engine.advance(job_id, chunk_size=2)
    done = engine.snapshot(job_id)
    assert done.state is JobState.DONE
    assert done.progress_percent == 100.0
    assert done.pending_delta == []


def test_undelivered_delta_is_handed_over_once(engine, memory_store, sample_global_config) -> None:
    job_id = engine.create_job(urls(2), PATTERN)
    stored = memory_store.get(job_id)
    chunk = machine.take_chunk(stored, 1)
    delivered = [Result(url=chunk[0], http_status=200, attempts=1, matches=["http://x.com"])]
    memory_store.set(machine.apply_results(stored, chunk, delivered), sample_global_config.job_ttl_seconds)

    first = engine.snapshot(job_id)
    second = engine.snapshot(job_id)

    assert first.pending_delta == delivered
    assert second.pending_delta == []
    assert second.completed == 1
    assert memory_store.get(job_id).pending_delta == []


def test_default_chunk_follows_policy(make_engine, fake_fetcher, sample_global_config) -> None:
    engine = make_engine(fake_fetcher)
    job_id = engine.create_job(urls(5), PATTERN, concurrency=2)
    assert engine.advance(job_id).completed == 2

    single = make_engine(
        fake_fetcher,
        global_config=sample_global_config.model_copy(update={"chunk_policy": ChunkPolicy.SINGLE}),
    )
    job_id = single.create_job(urls(5), PATTERN, concurrency=2)
    assert single.advance(job_id).completed == 1


def test_chunk_size_for(engine) -> None:
    assert engine.chunk_size_for(4, ChunkPolicy.CONCURRENCY) == 4
    assert engine.chunk_size_for(4, ChunkPolicy.SINGLE) == 1


def test_advance_rejects_non_positive_chunk(engine) -> None:
    job_id = engine.create_job(urls(1), PATTERN)
    with pytest.raises(InvalidInput):
        engine.advance(job_id, chunk_size=0)


def test_missing_job_raises_but_poll_treats_it_as_done(engine) -> None:
    with pytest.raises(JobNotFound):
        engine.advance("lre_missing", chunk_size=1)
    with pytest.raises(JobNotFound):
        engine.finalize("lre_missing")

    report = engine.poll("lre_missing", chunk_size=1)
    assert report.done is True
    assert report.total == 0
    assert report.progress_percent == 100.0
    assert report.new_results == []


def test_jobs_expire_after_inactivity(engine, fake_clock, sample_global_config) -> None:
    ttl = sample_global_config.job_ttl_seconds
    job_id = engine.create_job(urls(4), PATTERN)

    fake_clock.advance(ttl - 1)
    engine.advance(job_id, chunk_size=1)
    fake_clock.advance(ttl - 1)
    assert engine.snapshot(job_id).completed == 1

    fake_clock.advance(2)
    with pytest.raises(JobNotFound):
        engine.snapshot(job_id)
    assert engine.poll(job_id, chunk_size=1).done is True
    assert engine.purge_expired() == 0


def test_purge_expired_drops_stale_jobs(engine, fake_clock, sample_global_config) -> None:
    engine.create_job(urls(1), PATTERN)
    engine.create_job(urls(2), PATTERN)
    fake_clock.advance(sample_global_config.job_ttl_seconds + 1)
    assert engine.purge_expired() == 2


def test_lost_compare_and_set_discards_chunk(engine, memory_store, monkeypatch) -> None:
    job_id = engine.create_job(urls(3), PATTERN)
    monkeypatch.setattr(memory_store, "compare_and_set", lambda job, expected_version, ttl: False)

    report = engine.advance(job_id, chunk_size=2)

    assert report.new_results == []
    assert report.completed == 0
    assert report.done is False
    assert memory_store.get(job_id).queue == urls(3)


def test_overlapping_pollers_process_each_url_once(make_engine, make_fetcher) -> None:
    fetcher = make_fetcher(default=(200, "http://a.com", ""), latency=0.005)
    engine = make_engine(fetcher)
    batch = urls(12)
    job_id = engine.create_job(batch, PATTERN, concurrency=2)
    errors: list[BaseException] = []

    def poller() -> None:
        try:
            while not engine.poll(job_id, chunk_size=2).done:
                pass
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=poller) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    history = [result.url for result in engine.finalize(job_id)]
    assert sorted(history) == sorted(batch)
    assert len(history) == len(set(history))
    assert sorted(fetcher.calls) == sorted(batch)
    assert len(engine.locks) == 0


def test_engine_runs_on_sqlite_store(make_engine, fake_fetcher, tmp_path, fake_clock) -> None:
    store = SQLiteJobStore(tmp_path / "jobs.db", clock=fake_clock)
    engine = make_engine(fake_fetcher, store=store)
    job_id = engine.create_job(urls(3), PATTERN, concurrency=2)

    while not engine.advance(job_id).done:
        pass

    assert store.get(job_id).version == 2
    assert [result.url for result in engine.finalize(job_id)] == urls(3)
    store.close()
