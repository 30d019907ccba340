"""Read URL lists from plain text or CSV files."""

from __future__ import annotations

import csv
import io
import re
from pathlib import Path
from typing import Iterable

_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


def _cells(text: str, csv_mode: bool) -> Iterable[str]:
    if csv_mode:
        for row in csv.reader(io.StringIO(text)):
            yield from row
    else:
        yield from text.splitlines()


def read_urls(path: Path) -> list[str]:
    """Return the http(s) URLs found in ``path``, in file order.

    ``.csv`` files contribute every cell of every row; any other file is read
    one URL per line. Surrounding quotes and whitespace are stripped and
    entries that do not start with ``http://`` or ``https://`` are skipped.
    """

    text = path.read_text(encoding="utf-8-sig")
    urls: list[str] = []
    for cell in _cells(text, path.suffix.lower() == ".csv"):
        candidate = cell.strip().strip('"').strip()
        if candidate and _HTTP_URL.match(candidate):
            urls.append(candidate)
    return urls


__all__ = ["read_urls"]
