"""Key-value job stores with time based expiry."""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Protocol, Tuple

from ..models import Job

Clock = Callable[[], float]


class JobStore(Protocol):
    """Persistence contract the job engine relies on."""

    def get(self, job_id: str) -> Job | None:
        """Return the stored job, or ``None`` when missing or expired."""

    def set(self, job: Job, ttl: int) -> None:
        """Store ``job`` unconditionally and (re)start its expiry clock."""

    def compare_and_set(self, job: Job, expected_version: int, ttl: int) -> bool:
        """Store ``job`` with version ``expected_version + 1`` if the stored version still matches."""

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""


class MemoryJobStore:
    """In-process store, handy for tests and single-shot CLI runs."""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[str, int, float]] = {}
        self._lock = Lock()

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None:
                return None
            payload, _version, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[job_id]
                return None
        return Job.model_validate_json(payload)

    def set(self, job: Job, ttl: int) -> None:
        with self._lock:
            self._entries[job.job_id] = (job.model_dump_json(), job.version, self._clock() + ttl)

    def compare_and_set(self, job: Job, expected_version: int, ttl: int) -> bool:
        with self._lock:
            entry = self._entries.get(job.job_id)
            if entry is None:
                return False
            _payload, version, expires_at = entry
            now = self._clock()
            if version != expected_version or expires_at <= now:
                return False
            stamped = job.model_copy(update={"version": expected_version + 1})
            self._entries[job.job_id] = (stamped.model_dump_json(), stamped.version, now + ttl)
            return True

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, _, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)


class SQLiteJobStore:
    """Persist jobs as JSON payloads in a single SQLite table."""

    def __init__(self, path: Path, clock: Clock = time.time) -> None:
        self.path = path
        self._clock = clock
        self._lock = Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS jobs (
                job_id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                version INTEGER NOT NULL,
                expires_at REAL NOT NULL
            )
            """
        )
        self._conn.commit()

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT payload, expires_at FROM jobs WHERE job_id = ?", (job_id,)
            ).fetchone()
        if row is None or row["expires_at"] <= self._clock():
            return None
        return Job.model_validate_json(row["payload"])

    def set(self, job: Job, ttl: int) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO jobs(job_id, payload, version, expires_at) VALUES (?, ?, ?, ?)",
                (job.job_id, job.model_dump_json(), job.version, self._clock() + ttl),
            )
            self._conn.commit()

    def compare_and_set(self, job: Job, expected_version: int, ttl: int) -> bool:
        stamped = job.model_copy(update={"version": expected_version + 1})
        now = self._clock()
        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE jobs SET payload = ?, version = ?, expires_at = ?
                WHERE job_id = ? AND version = ? AND expires_at > ?
                """,
                (
                    stamped.model_dump_json(),
                    stamped.version,
                    now + ttl,
                    job.job_id,
                    expected_version,
                    now,
                ),
            )
            self._conn.commit()
            return cursor.rowcount == 1

    def purge_expired(self) -> int:
        with self._lock:
            cursor = self._conn.execute("DELETE FROM jobs WHERE expires_at <= ?", (self._clock(),))
            self._conn.commit()
            return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            self._conn.close()


__all__ = ["Clock", "JobStore", "MemoryJobStore", "SQLiteJobStore"]
