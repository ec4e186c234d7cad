"""Project tree traversal for sync passes.

The walkers only classify entries; they never upload anything. Uploading is
a separate stage that consumes the modified entries.
"""

import logging
import stat
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..exceptions import InvalidReferenceError, SyncError, SyncOperation
from ..utils import wire_path
from .matcher import clean_rule, is_ignored
from .rules import RefPath

logger = logging.getLogger(__name__)


class EntryKind(str, Enum):
    """Classification of a visited filesystem entry."""

    DIRECTORY = "directory"
    FILE = "file"
    """File not modified since the cutoff"""

    MODIFIED_FILE = "modified_file"
    """File modified after the cutoff"""


@dataclass(frozen=True)
class WalkEntry:
    """A non-ignored entry found during a walk."""

    path: Path
    """Absolute path of the entry on disk"""

    relative_path: str
    """Forward-slash path relative to the project root"""

    kind: EntryKind

    mtime_ms: int
    """Last modification time in milliseconds since the epoch"""

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def is_modified(self) -> bool:
        return self.kind is EntryKind.MODIFIED_FILE


def _classify_file(mtime_ms: int, last_sync: int) -> EntryKind:
    return EntryKind.MODIFIED_FILE if mtime_ms > last_sync else EntryKind.FILE


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def _walk_dir(
    directory: Path,
    prefix: str,
    rules: list[str],
    last_sync: int,
) -> Iterator[WalkEntry]:
    try:
        children = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise SyncError(
            SyncOperation.SYNC_WALK,
            f"error walking the path {str(directory)!r}: {e}",
            e,
        ) from e

    for child in children:
        try:
            st = child.stat(follow_symlinks=False)
        except OSError as e:
            raise SyncError(
                SyncOperation.SYNC_WALK,
                f"error walking the path {str(child)!r}: {e}",
                e,
            ) from e

        relative_path = _join(prefix, wire_path(child.name))
        mtime_ms = st.st_mtime_ns // 1_000_000

        if stat.S_ISDIR(st.st_mode):
            # Ignored directories are pruned, not just left out
            if is_ignored(relative_path, True, rules):
                continue
            yield WalkEntry(child, relative_path, EntryKind.DIRECTORY, mtime_ms)
            yield from _walk_dir(child, relative_path, rules, last_sync)
        else:
            if is_ignored(relative_path, False, rules):
                continue
            yield WalkEntry(
                child, relative_path, _classify_file(mtime_ms, last_sync), mtime_ms
            )


def walk_tree(
    root: Path,
    ignored_paths: Iterable[str],
    last_sync: int,
    target_prefix: str = "",
) -> Iterator[WalkEntry]:
    """Walk a directory tree and classify every non-ignored entry.

    Entries are produced lazily in lexical order, parents before children.
    The root itself is never produced. Calling the function again starts a
    fresh walk.

    Args:
        root: Directory to walk
        ignored_paths: Ignore rules matched against the relative paths
        last_sync: Cutoff in milliseconds; newer files are MODIFIED_FILE
        target_prefix: Relative path the root maps to ("" for the project root)

    Yields:
        WalkEntry for each directory and file that is not ignored

    Raises:
        SyncError: If a directory cannot be read (SYNC_WALK)

    Examples:
        >>> entries = list(walk_tree(Path("/project"), ["build"], 0))
        >>> [e.relative_path for e in entries if e.is_modified]
        ['a.txt', 'src/main.py']
    """
    rules = list(ignored_paths)
    yield from _walk_dir(Path(root), target_prefix.strip("/"), rules, last_sync)


def walk_reference(
    project_path: Path,
    ref: RefPath,
    ignored_paths: Iterable[str],
    last_sync: int,
) -> Iterator[WalkEntry]:
    """Produce the entry for a referenced file at its target path.

    Args:
        project_path: Project root, used to resolve relative sources
        ref: Reference path
        ignored_paths: Base ignore rules (reference targets are not included)
        last_sync: Cutoff in milliseconds for this reference

    Yields:
        At most one WalkEntry whose relative path is the reference target

    Raises:
        InvalidReferenceError: If the source is missing or is a directory, or
            the target is the project root itself
    """
    source = ref.resolve_from(project_path)
    try:
        st = source.stat()
    except OSError as e:
        raise InvalidReferenceError(str(source), str(e)) from e
    if stat.S_ISDIR(st.st_mode):
        raise InvalidReferenceError(str(source), "is a directory")

    relative_path = wire_path(clean_rule(ref.to_path))
    if relative_path in ("", "."):
        raise InvalidReferenceError(str(source), "target is the project root")
    if is_ignored(relative_path, False, ignored_paths):
        return

    mtime_ms = st.st_mtime_ns // 1_000_000
    logger.debug(f"Reference {source} -> {relative_path}")
    yield WalkEntry(
        source, relative_path, _classify_file(mtime_ms, last_sync), mtime_ms
    )
