"""Per-job mutual exclusion inside one process."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator


class JobLocks:
    """Hand out one lock per job id so overlapping advances on a job serialize."""

    def __init__(self) -> None:
        self._locks: Dict[str, Lock] = {}
        self._users: Dict[str, int] = {}
        self._lock = Lock()

    @contextmanager
    def hold(self, job_id: str) -> Iterator[None]:
        with self._lock:
            job_lock = self._locks.setdefault(job_id, Lock())
            self._users[job_id] = self._users.get(job_id, 0) + 1
        job_lock.acquire()
        try:
            yield
        finally:
            job_lock.release()
            with self._lock:
                self._users[job_id] -= 1
                if self._users[job_id] == 0:
                    del self._users[job_id]
                    del self._locks[job_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._locks)


__all__ = ["JobLocks"]
