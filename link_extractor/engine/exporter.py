"""File exporter for finalized job results (CSV or JSON lines)."""

from __future__ import annotations

import csv
import json
import re
from pathlib import Path
from typing import Iterable, Literal, Optional, TextIO

from ..models import Result

ExportFormat = Literal["csv", "json"]
COLUMNS = ("source_url", "http_status", "error", "matched_links")


class ResultExporter:
    """Write results as ``source_url, http_status, error, matched_links`` rows."""

    def __init__(
        self,
        path: Path,
        fmt: ExportFormat = "csv",
        delimiter: str = "|",
        stream: TextIO | None = None,
    ) -> None:
        if fmt not in ("csv", "json"):
            raise ValueError(f"Unsupported export format: {fmt}")
        self.path = path
        self.format = fmt
        self.delimiter = delimiter
        self._owns_stream = stream is None
        if stream is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            stream = self.path.open("w", encoding="utf-8", newline="")
        self._file = stream
        self._csv_writer: Optional[csv.DictWriter] = None
        self.count = 0

    @staticmethod
    def default_filename(job_id: str, fmt: ExportFormat = "csv") -> str:
        slug = re.sub(r"[^0-9A-Za-z_-]+", "_", job_id.strip()) or "job"
        extension = "jsonl" if fmt == "json" else "csv"
        return f"lre-{slug}.{extension}"

    def export(self, result: Result) -> None:
        row = result.as_row(self.delimiter)
        if self.format == "json":
            payload = dict(row, matched_links=list(result.matches), attempts=result.attempts)
            json.dump(payload, self._file, ensure_ascii=False)
            self._file.write("\n")
        else:
            if self._csv_writer is None:
                self._csv_writer = csv.DictWriter(self._file, fieldnames=list(COLUMNS))
                self._csv_writer.writeheader()
            self._csv_writer.writerow(row)
        self.count += 1

    def export_many(self, results: Iterable[Result]) -> int:
        for result in results:
            self.export(result)
        # Header is written even when there is nothing to export.
        if self.format == "csv" and self._csv_writer is None:
            self._csv_writer = csv.DictWriter(self._file, fieldnames=list(COLUMNS))
            self._csv_writer.writeheader()
        return self.count

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        self.flush()
        if self._owns_stream:
            self._file.close()

    def __enter__(self) -> "ResultExporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["COLUMNS", "ExportFormat", "ResultExporter"]
