"""Persistence of the last-sync cutoff between passes.

The engine itself is stateless across passes; callers that do not track the
cutoff themselves (such as the CLI) store it here after each completed pass.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class SyncState:
    """Cutoff recorded after the last completed pass of a project."""

    project_id: str
    """Project ID on the server"""

    local_path: str
    """Resolved local project directory"""

    last_sync: int = 0
    """Start time of the last completed pass, in milliseconds"""

    def to_dict(self) -> dict:
        """Serialize for the state file."""
        return {
            "project_id": self.project_id,
            "local_path": self.local_path,
            "last_sync": self.last_sync,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncState":
        """Build from a state file payload."""
        return cls(
            project_id=str(data.get("project_id", "")),
            local_path=data.get("local_path", ""),
            last_sync=int(data.get("last_sync", 0)),
        )


class SyncStateManager:
    """Stores one JSON state file per (project ID, local path) pair."""

    def __init__(self, state_dir: Path):
        """Initialize state manager.

        Args:
            state_dir: Directory to store state files
        """
        self.state_dir = state_dir

    def _get_state_file(self, project_id: str, local_path: Path) -> Path:
        local_abs = str(local_path.resolve())
        key = hashlib.sha256(f"{project_id}:{local_abs}".encode()).hexdigest()[:16]
        return self.state_dir / f"{key}.json"

    def load_state(self, project_id: str, local_path: Path) -> Optional[SyncState]:
        """Load the stored state, or None if absent or unreadable."""
        state_file = self._get_state_file(project_id, local_path)

        if not state_file.exists():
            logger.debug(f"No stored cutoff at {state_file}")
            return None

        try:
            with open(state_file, encoding="utf-8") as f:
                data = json.load(f)
            return SyncState.from_dict(data)
        except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cutoff state {state_file}: {e}")
            return None

    def load_last_sync(self, project_id: str, local_path: Path) -> int:
        """Return the stored cutoff, 0 when nothing usable is stored."""
        state = self.load_state(project_id, local_path)
        return state.last_sync if state else 0

    def save_last_sync(self, project_id: str, local_path: Path, last_sync: int) -> None:
        """Store the cutoff for the next pass.

        Args:
            project_id: Project ID
            local_path: Local project directory
            last_sync: Start time of the completed pass, in milliseconds
        """
        state = SyncState(
            project_id=project_id,
            local_path=str(local_path.resolve()),
            last_sync=last_sync,
        )
        state_file = self._get_state_file(project_id, local_path)

        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with open(state_file, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            logger.debug(f"Saved sync state ({last_sync}) to {state_file}")
        except OSError as e:
            logger.warning(f"Could not store cutoff in {state_file}: {e}")

    def clear_state(self, project_id: str, local_path: Path) -> bool:
        """Remove the stored state.

        Returns:
            True if a state file was removed
        """
        state_file = self._get_state_file(project_id, local_path)
        if state_file.exists():
            state_file.unlink()
            logger.debug(f"Removed cutoff state {state_file}")
            return True
        return False
