"""Accumulated result of a sync pass."""

import threading
from pathlib import Path

from ..models import CompleteRequest, UploadedFile
from .walker import EntryKind, WalkEntry


class ChangeSet:
    """Lists of files, directories and modified files found during one pass.

    A change set belongs to a single pass and is not reused. All mutations
    go through a lock so uploads may report outcomes from worker threads.
    """

    def __init__(self) -> None:
        self.file_list: list[str] = []
        self.directory_list: list[str] = []
        self.modified_list: list[str] = []
        self.uploaded_files: list[UploadedFile] = []
        self._sources: dict[str, Path] = {}
        self._lock = threading.Lock()

    def record(self, entry: WalkEntry) -> None:
        """Add a walked entry to the matching lists."""
        with self._lock:
            if entry.kind is EntryKind.DIRECTORY:
                self.directory_list.append(entry.relative_path)
                return
            self.file_list.append(entry.relative_path)
            self._sources[entry.relative_path] = entry.path
            if entry.kind is EntryKind.MODIFIED_FILE:
                self.modified_list.append(entry.relative_path)

    def add_modified(self, relative_path: str) -> None:
        """Mark a file as modified after the walk (e.g. new on the remote)."""
        with self._lock:
            self.modified_list.append(relative_path)

    def add_outcome(self, outcome: UploadedFile) -> None:
        with self._lock:
            self.uploaded_files.append(outcome)

    def source_path(self, relative_path: str) -> Path:
        """Return the on-disk path a recorded file was read from.

        Raises:
            KeyError: If the path was never recorded as a file
        """
        return self._sources[relative_path]

    def is_modified(self, relative_path: str) -> bool:
        return relative_path in self.modified_list

    def new_files(self, remote_file_list: list[str]) -> list[str]:
        """Return files present locally but absent from the remote's list.

        Args:
            remote_file_list: File list the remote recorded at its last pass

        Returns:
            Relative paths in walk order
        """
        known = set(remote_file_list)
        return [path for path in self.file_list if path not in known]

    def to_complete_request(self, timestamp: int) -> CompleteRequest:
        """Build the completion manifest for this pass.

        Args:
            timestamp: Time the pass began, in milliseconds
        """
        with self._lock:
            return CompleteRequest(
                file_list=list(self.file_list),
                directory_list=list(self.directory_list),
                modified_list=list(self.modified_list),
                time_stamp=timestamp,
            )
