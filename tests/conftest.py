"""Shared fixtures for projsync tests."""

import os
from pathlib import Path
from typing import Callable

import pytest

# Timestamps in ms: OLD < CUTOFF < NEW
OLD_MS = 1_000_000_000_000
CUTOFF_MS = 1_500_000_000_000
NEW_MS = 2_000_000_000_000


def set_mtime(path: Path, mtime_ms: int) -> None:
    """Set a path's access and modification time in milliseconds."""
    ns = mtime_ms * 1_000_000
    os.utime(path, ns=(ns, ns))


@pytest.fixture
def make_file() -> Callable[..., Path]:
    """Create a file with given content and modification time."""

    def _make(path: Path, content: str = "content", mtime_ms: int = OLD_MS) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        set_mtime(path, mtime_ms)
        return path

    return _make


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create an empty project directory."""
    project = tmp_path / "project"
    project.mkdir()
    return project
