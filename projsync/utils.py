"""Utility functions for projsync."""

import os
import re
import time
from datetime import datetime
from functools import lru_cache
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Retry configuration for transient errors on metadata requests
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Request timeout for the project server
DEFAULT_TIMEOUT: float = 30.0  # seconds


# =============================================================================
# Timestamp utilities
# =============================================================================


def current_millis() -> int:
    """Return the current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def format_millis(millis: Optional[int]) -> str:
    """Format a millisecond timestamp for display.

    Examples:
        >>> format_millis(0)
        'never'
    """
    if not millis:
        return "never"
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M:%S")


def wire_path(path: str) -> str:
    """Make a relative path safe to send as JSON.

    File names that are not valid UTF-8 reach Python with surrogate escapes;
    the offending bytes are replaced with U+FFFD.
    """
    try:
        raw = os.fsencode(path)
    except UnicodeEncodeError:
        raw = path.encode("utf-8", "replace")
    return raw.decode("utf-8", "replace")


# =============================================================================
# Glob matching utilities
# =============================================================================


def _class_char(pattern: str, i: int) -> tuple[str, int]:
    """Read one (possibly escaped) character of a character class."""
    if i >= len(pattern):
        raise ValueError(f"Unterminated character class in {pattern!r}")
    c = pattern[i]
    if c in "-]":
        raise ValueError(f"Unexpected {c!r} in character class of {pattern!r}")
    if c == "\\":
        i += 1
        if i >= len(pattern):
            raise ValueError(f"Trailing backslash in {pattern!r}")
        c = pattern[i]
    return c, i + 1


def _parse_class(pattern: str, i: int) -> tuple[str, int]:
    """Translate a character class starting after its opening bracket.

    Returns:
        Tuple of (regex fragment, index after the closing bracket)
    """
    negate = False
    if i < len(pattern) and pattern[i] in "^!":
        negate = True
        i += 1

    ranges: list[str] = []
    while True:
        if i >= len(pattern):
            raise ValueError(f"Unterminated character class in {pattern!r}")
        if pattern[i] == "]" and ranges:
            i += 1
            break
        lo, i = _class_char(pattern, i)
        if i < len(pattern) and pattern[i] == "-":
            hi, i = _class_char(pattern, i + 1)
            if lo > hi:
                raise ValueError(f"Invalid range {lo}-{hi} in {pattern!r}")
            ranges.append(f"{re.escape(lo)}-{re.escape(hi)}")
        else:
            ranges.append(re.escape(lo))

    body = "".join(ranges)
    if negate:
        return f"[^{body}]", i
    return f"[{body}]", i


def glob_to_regex(pattern: str) -> str:
    """Translate a shell glob into a regular expression.

    ``*`` matches any run of characters except ``/``, ``?`` matches a single
    character except ``/``, ``[...]`` is a character class (``^`` or ``!``
    negates it) and ``\\`` escapes the next character. A negated class can
    match ``/``. The pattern is matched against the whole string.

    Args:
        pattern: Glob pattern

    Returns:
        Regular expression source suitable for ``re.fullmatch``

    Raises:
        ValueError: If the pattern is malformed

    Examples:
        >>> glob_to_regex("*.log")
        '[^/]*\\\\.log'
    """
    parts: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        elif c == "\\":
            i += 1
            if i >= n:
                raise ValueError(f"Trailing backslash in {pattern!r}")
            parts.append(re.escape(pattern[i]))
        elif c == "[":
            fragment, i = _parse_class(pattern, i + 1)
            parts.append(fragment)
            continue
        else:
            parts.append(re.escape(c))
        i += 1
    return "".join(parts)


@lru_cache(maxsize=1024)
def _compile_glob(pattern: str) -> "re.Pattern[str]":
    return re.compile(glob_to_regex(pattern), re.DOTALL)


def glob_match(pattern: str, name: str) -> bool:
    """Check whether a name matches a glob pattern in full.

    Raises:
        ValueError: If the pattern is malformed

    Examples:
        >>> glob_match("*.txt", "a.txt")
        True
        >>> glob_match("*.txt", "dir/a.txt")
        False
    """
    return _compile_glob(pattern).fullmatch(name) is not None
