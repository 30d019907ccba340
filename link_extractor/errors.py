"""Exception taxonomy shared by the engine, the job store and the CLI."""

from __future__ import annotations

from typing import Any, Dict

INVALID_REGEX = "invalid regex"


class LinkExtractorError(Exception):
    """Base exception for extractor errors."""

    def __init__(self, message: str, details: Dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidInput(LinkExtractorError, ValueError):
    """Raised when a job cannot be created from the supplied input."""


class JobNotFound(LinkExtractorError, KeyError):
    """Raised when a job id is unknown or its stored state has expired."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found or expired: {job_id}", details={"job_id": job_id})
        self.job_id = job_id

    def __str__(self) -> str:
        return self.message


class FetchError(LinkExtractorError):
    """Transport level failure (connect, timeout, TLS, protocol)."""

    @staticmethod
    def describe(exc: BaseException) -> str:
        """Return the error kind recorded on a result: exception name plus message."""
        text = str(exc).strip()
        name = type(exc).__name__
        return f"{name}: {text}" if text else name


class HTTPError(LinkExtractorError):
    """Final response status outside 200-399 once retries are exhausted."""

    @staticmethod
    def describe(status: int) -> str:
        return f"http_{status}"


class InvalidRegex(LinkExtractorError):
    """Pattern failed to compile at match time."""

    def __init__(self, pattern: str, reason: str = "") -> None:
        super().__init__(INVALID_REGEX, details={"pattern": pattern, "reason": reason})
        self.pattern = pattern


__all__ = [
    "FetchError",
    "HTTPError",
    "INVALID_REGEX",
    "InvalidInput",
    "InvalidRegex",
    "JobNotFound",
    "LinkExtractorError",
]
