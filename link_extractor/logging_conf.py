"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
import re
from pathlib import Path
from typing import Iterable

import structlog

_LOGGING_INITIALISED = False
_UNSAFE_NAME = re.compile(r"[^0-9A-Za-z_-]")


def _default_log_dir() -> Path:
    env_root = os.environ.get("LINK_EXTRACTOR_HOME")
    root = Path(env_root).expanduser() if env_root else Path.cwd()
    return root / "logs"


def _job_file_name(job_id: str) -> str:
    return f"{_UNSAFE_NAME.sub('_', job_id)}.log"


class JobFileHandler(logging.Handler):
    """Append records carrying a ``job_id`` to ``jobs/<job_id>.log``.

    A single instance serves every job. The target file is opened for each
    record and closed straight after, so no descriptor is held per job.
    """

    def __init__(self, directory: Path | str | None = None, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.directory = Path(directory) if directory else None

    @staticmethod
    def job_id_of(record: logging.LogRecord) -> str | None:
        if isinstance(record.msg, dict):
            return record.msg.get("job_id")
        return getattr(record, "job_id", None)

    def emit(self, record: logging.LogRecord) -> None:
        job_id = self.job_id_of(record)
        if not job_id:
            return
        try:
            directory = self.directory or _default_log_dir() / "jobs"
            directory.mkdir(parents=True, exist_ok=True)
            line = self.format(record)
            with (directory / _job_file_name(str(job_id))).open("a", encoding="utf-8") as stream:
                stream.write(line + "\n")
        except Exception:
            self.handleError(record)


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    log_dir = _default_log_dir()
    error_log = log_dir / "error.log"
    extractor_log = log_dir / "extractor.log"
    jobs_dir = log_dir / "jobs"
    jobs_dir.mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    extractor_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        # WARNING and above unless --verbose
                        "level": level if verbose else "WARNING",
                        "formatter": "plain",
                    },
                    "extractor_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(extractor_log),
                        "formatter": "plain",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                    },
                    "job_files": {
                        "()": JobFileHandler,
                        "level": "INFO",
                        "formatter": "plain",
                    },
                },
                "loggers": {
                    "link_extractor": {
                        "handlers": ["console", "extractor_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                    "link_extractor.job": {
                        "handlers": ["job_files"],
                        "level": level,
                        "propagate": True,
                    },
                },
            }
        )

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("link_extractor")


def job_logger(job_id: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to ``job_id``; its records also land in the job's own file."""

    configure_logging(verbose)
    return structlog.get_logger("link_extractor.job").bind(job_id=job_id)


def log_path(job_id: str | None = None) -> Path:
    """Return the global log file or the log file of ``job_id``."""

    if job_id:
        return _default_log_dir() / "jobs" / _job_file_name(job_id)
    return _default_log_dir() / "extractor.log"


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def available_job_logs() -> Iterable[Path]:
    """Yield available per-job log file paths."""

    jobs_dir = _default_log_dir() / "jobs"
    if not jobs_dir.exists():
        return []
    return sorted(p for p in jobs_dir.glob("*.log"))


__all__ = [
    "JobFileHandler",
    "available_job_logs",
    "configure_logging",
    "job_logger",
    "log_path",
    "tail_log",
]
