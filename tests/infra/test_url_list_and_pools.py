from __future__ import annotations

import random
import threading
import time

from link_extractor.infra import JobLocks, UserAgentPool, read_urls


def test_read_urls_plain_text(tmp_path) -> None:
    path = tmp_path / "urls.txt"
    path.write_text(
        "https://a.test/\n\n  http://b.test/page  \n# comment\nftp://c.test/\n\"https://d.test/\"\n",
        encoding="utf-8",
    )
    assert read_urls(path) == ["https://a.test/", "http://b.test/page", "https://d.test/"]


def test_read_urls_csv_takes_every_cell(tmp_path) -> None:
    path = tmp_path / "urls.csv"
    path.write_text(
        "name,url\nfirst,https://a.test/\n\"https://b.test/,x\",HTTPS://C.TEST/\n",
        encoding="utf-8",
    )
    assert read_urls(path) == ["https://a.test/", "https://b.test/,x", "HTTPS://C.TEST/"]


def test_read_urls_skips_byte_order_mark(tmp_path) -> None:
    path = tmp_path / "bom.txt"
    path.write_text("\ufeffhttps://a.test/\n", encoding="utf-8")
    assert read_urls(path) == ["https://a.test/"]


def test_user_agent_pool(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(random, "choice", lambda seq: seq[-1])
    agents_file = tmp_path / "agents.txt"
    agents_file.write_text("UA-file\n\n", encoding="utf-8")
    pool = UserAgentPool(user_agents=["UA1", " "], file_path=agents_file)
    assert len(pool) == 2
    assert pool.get() == "UA-file"
    assert UserAgentPool().get() is None


def test_job_locks_serialize_same_job() -> None:
    locks = JobLocks()
    active: list[str] = []
    overlaps: list[int] = []

    def worker() -> None:
        with locks.hold("job-1"):
            active.append("x")
            overlaps.append(len(active))
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == [1, 1, 1, 1, 1]
    assert len(locks) == 0


def test_job_locks_do_not_block_other_jobs() -> None:
    locks = JobLocks()
    with locks.hold("a"):
        acquired = threading.Event()

        def other() -> None:
            with locks.hold("b"):
                acquired.set()

        thread = threading.Thread(target=other)
        thread.start()
        assert acquired.wait(timeout=2)
        thread.join()
        assert len(locks) == 1
    assert len(locks) == 0
