"""Ignore-rule evaluation for project-relative paths."""

import logging
import posixpath
from collections.abc import Iterable

from ..utils import glob_match

logger = logging.getLogger(__name__)


def clean_rule(rule: str) -> str:
    """Normalize an ignore rule before matching.

    Redundant separators and ``.``/``..`` elements are collapsed and a leading
    ``/`` (written by older settings files) is dropped.

    Examples:
        >>> clean_rule("/build/")
        'build'
        >>> clean_rule("src/./gen/../out")
        'src/out'
    """
    cleaned = posixpath.normpath(rule)
    return cleaned.lstrip("/")


def is_ignored(relative_path: str, is_dir: bool, rules: Iterable[str]) -> bool:
    """Check whether a project-relative path is excluded from sync.

    Each rule is a glob matched against the whole relative path, so ``*.log``
    matches ``app.log`` but not ``logs/app.log``. The first matching rule
    wins. A malformed rule never matches.

    Args:
        relative_path: Forward-slash path relative to the project root
        is_dir: Whether the path is a directory (rules apply the same way)
        rules: Ignore rules

    Returns:
        True if the path should be skipped
    """
    for rule in rules:
        pattern = clean_rule(rule)
        try:
            matched = glob_match(pattern, relative_path)
        except ValueError as e:
            logger.debug(f"Treating malformed ignore rule {rule!r} as no match: {e}")
            continue
        if matched:
            kind = "directory" if is_dir else "file"
            logger.debug(f"Ignoring {kind} {relative_path} (rule {rule!r})")
            return True
    return False
