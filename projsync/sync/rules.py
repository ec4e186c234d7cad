"""Loading of the per-project ignore and reference-path files.

Both files are optional JSON documents at the project root. A missing,
unreadable or malformed file yields an empty rule set so that a pass can
always proceed.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".cw-settings"
"""Holds ``{"ignoredPaths": [...]}``"""

REF_PATHS_FILE_NAME = ".cw-refpaths.json"
"""Holds ``{"refPaths": [{"from": ..., "to": ...}]}``"""


@dataclass(frozen=True)
class RefPath:
    """A file outside (or inside) the project shown at a project-relative path."""

    from_path: str
    """Absolute path, or path relative to the project root"""

    to_path: str
    """Target path relative to the project root"""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RefPath":
        return cls(from_path=str(data["from"]), to_path=str(data["to"]))

    def resolve_from(self, project_path: Path) -> Path:
        """Return the absolute source path of this reference."""
        source = Path(self.from_path)
        if not source.is_absolute():
            source = project_path / source
        return source


@dataclass
class SyncRules:
    """Ignore and reference rules in effect for one project."""

    ignored_paths: list[str] = field(default_factory=list)
    ref_paths: list[RefPath] = field(default_factory=list)

    @property
    def combined_ignored_paths(self) -> list[str]:
        """Ignore rules for the physical tree walk.

        Every reference target is ignored as well, so a file that physically
        exists at a reference's ``to`` location is never synced from there.
        """
        return self.ignored_paths + [ref.to_path for ref in self.ref_paths]


def _read_json_or_none(path: Path) -> Optional[Any]:
    """Read a JSON file, returning None when it is absent or malformed."""
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable rule file {path}: {e}")
        return None


def load_ignored_paths(project_path: Path) -> list[str]:
    """Load ignore rules from the project's settings file.

    Args:
        project_path: Project root directory

    Returns:
        List of glob patterns, empty if the file is missing or malformed
    """
    data = _read_json_or_none(project_path / IGNORE_FILE_NAME)
    if not isinstance(data, dict):
        return []

    ignored = data.get("ignoredPaths")
    if not isinstance(ignored, list):
        return []
    return [str(pattern) for pattern in ignored if isinstance(pattern, str)]


def load_ref_paths(project_path: Path) -> list[RefPath]:
    """Load reference paths from the project's reference file.

    Args:
        project_path: Project root directory

    Returns:
        List of RefPath, empty if the file is missing or malformed
    """
    data = _read_json_or_none(project_path / REF_PATHS_FILE_NAME)
    if not isinstance(data, dict):
        return []

    entries = data.get("refPaths")
    if not isinstance(entries, list):
        return []

    ref_paths: list[RefPath] = []
    for entry in entries:
        try:
            ref_paths.append(RefPath.from_dict(entry))
        except (KeyError, TypeError):
            logger.warning(f"Skipping malformed reference entry: {entry!r}")
    return ref_paths


def load_rules(project_path: Path) -> SyncRules:
    """Load both rule files for a project."""
    rules = SyncRules(
        ignored_paths=load_ignored_paths(project_path),
        ref_paths=load_ref_paths(project_path),
    )
    logger.debug(
        f"Loaded {len(rules.ignored_paths)} ignore rule(s) and "
        f"{len(rules.ref_paths)} reference path(s) from {project_path}"
    )
    return rules
