"""Regular expression validation and match extraction over page source."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Pattern

from ..errors import InvalidRegex

_DELIMITED = re.compile(r"^/(?P<body>.*)/(?P<flags>[imsxu]*)$", re.DOTALL)
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,
}


def _split_delimited(pattern: str) -> tuple[str, int]:
    """Translate ``/body/flags`` into a bare body plus ``re`` flags.

    A slash-wrapped pattern is only read as delimited when it carries flags or
    escapes a slash in its body; otherwise ``/wp-content/`` stays a literal path.
    """

    match = _DELIMITED.match(pattern)
    if match is None or not (match.group("flags") or "\\/" in match.group("body")):
        return pattern, 0
    flags = 0
    for letter in match.group("flags"):
        flags |= _FLAG_MAP[letter]
    return match.group("body"), flags


@lru_cache(maxsize=128)
def compile_pattern(pattern: str) -> Pattern[str]:
    """Compile ``pattern`` or raise :class:`InvalidRegex`.

    Both bare Python syntax (``https?://\\S+``) and the slash-delimited form
    (``/https?:\\/\\/\\S+/i``) are accepted; a slash-wrapped pattern with no flags
    and no escaped slash is taken as bare. Empty patterns are rejected.
    """

    body, flags = _split_delimited(pattern or "")
    if not body:
        raise InvalidRegex(pattern, "empty pattern")
    try:
        return re.compile(body, flags)
    except re.error as exc:
        raise InvalidRegex(pattern, str(exc)) from exc


class Matcher:
    """Find every match of the whole pattern inside a document."""

    @staticmethod
    def validate(pattern: str) -> bool:
        try:
            compiled = compile_pattern(pattern)
            compiled.search("")
        except (InvalidRegex, TypeError):
            return False
        return True

    @staticmethod
    def find_all(pattern: str, document: str) -> list[str]:
        """Return matches in first-seen order, de-duplicated by exact value.

        Only group 0 is collected, so capture groups inside the pattern do not
        change what is returned. Whitespace around each match is stripped and
        empty matches are dropped.
        """

        compiled = compile_pattern(pattern)
        seen: set[str] = set()
        found: list[str] = []
        for match in compiled.finditer(document or ""):
            value = match.group(0).strip()
            if not value or value in seen:
                continue
            seen.add(value)
            found.append(value)
        return found


__all__ = ["Matcher", "compile_pattern"]
