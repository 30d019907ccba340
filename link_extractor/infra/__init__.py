"""Infra layer utilities (job stores, locks, UA pool, URL lists)."""

from .locks import JobLocks
from .storage import JobStore, MemoryJobStore, SQLiteJobStore
from .ua_pool import UserAgentPool
from .url_list import read_urls

__all__ = [
    "JobLocks",
    "JobStore",
    "MemoryJobStore",
    "SQLiteJobStore",
    "UserAgentPool",
    "read_urls",
]
