"""Core sync engine that drives a single sync pass."""

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..api import ProjectClient
from ..exceptions import (
    InvalidReferenceError,
    ProjsyncAPIError,
    SyncError,
    SyncOperation,
)
from ..models import SyncResponse
from ..output import OutputFormatter
from ..utils import current_millis
from .changeset import ChangeSet
from .rules import REF_PATHS_FILE_NAME, SyncRules, load_rules
from .uploader import UploadCoordinator
from .walker import walk_reference, walk_tree

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """Phases of a sync pass, in order."""

    VALIDATE_LOCAL_PATH = "validate_local_path"
    WALK_LOCAL = "walk_local"
    WALK_REFERENCES = "walk_references"
    RECONCILE = "reconcile"
    COMPLETE = "complete"
    ABORTED = "aborted"


class SyncEngine:
    """Syncs a local project directory to its remote project, one way."""

    def __init__(
        self,
        client: ProjectClient,
        output: Optional[OutputFormatter] = None,
        max_workers: int = 1,
    ):
        """Initialize sync engine.

        Args:
            client: Project server client
            output: Output formatter for displaying progress/status
            max_workers: Number of parallel uploads (default: 1)
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.max_workers = max_workers
        self.phase: Optional[SyncPhase] = None

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug(f"Sync phase: {phase.value}")
        self.phase = phase

    @contextmanager
    def _spinner(self, description: str) -> Iterator[None]:
        if self.output.quiet or self.output.json_output:
            yield
            return
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task(description, total=None)
            yield

    def sync_project(
        self,
        project_path: Union[str, Path],
        project_id: str,
        last_sync: int = 0,
    ) -> SyncResponse:
        """Run one sync pass.

        Args:
            project_path: Local project directory
            project_id: Project ID on the server
            last_sync: Cutoff in milliseconds; files modified after it are uploaded

        Returns:
            SyncResponse with the completion status, the per-file upload
            outcomes and any non-fatal warnings

        Raises:
            SyncError: If the pass had to be aborted

        Examples:
            >>> engine = SyncEngine(ProjectClient("http://localhost:9090"))
            >>> response = engine.sync_project("/work/app", "a1b2", last_sync=0)
            >>> response.status_code
            200
        """
        current_sync_time = current_millis()
        start = time.time()
        try:
            return self._run(project_path, project_id, last_sync, current_sync_time)
        except SyncError:
            self._enter(SyncPhase.ABORTED)
            raise
        finally:
            logger.debug(f"Sync pass took {time.time() - start:.2f}s")

    def _run(
        self,
        project_path: Union[str, Path],
        project_id: str,
        last_sync: int,
        current_sync_time: int,
    ) -> SyncResponse:
        self._enter(SyncPhase.VALIDATE_LOCAL_PATH)
        path = self._validate_local_path(project_path, project_id)

        rules = load_rules(path)
        changes = ChangeSet()
        uploader = UploadCoordinator(self.client, project_id, self.max_workers)

        with self._spinner("Scanning project..."):
            self._enter(SyncPhase.WALK_LOCAL)
            ref_paths_changed = self._walk_local(path, rules, last_sync, changes)

            self._enter(SyncPhase.WALK_REFERENCES)
            warnings = self._walk_references(
                path, rules, last_sync, ref_paths_changed, changes
            )

        self._upload(uploader, list(changes.modified_list), changes)

        self._enter(SyncPhase.RECONCILE)
        self._reconcile(project_id, changes, uploader)

        self._enter(SyncPhase.COMPLETE)
        status, status_code = self._complete(project_id, changes, current_sync_time)

        response = SyncResponse(
            status=status,
            status_code=status_code,
            uploaded_files=list(changes.uploaded_files),
            warnings=warnings,
            time_stamp=current_sync_time,
        )
        if not self.output.quiet:
            self._display_summary(changes, response)
        return response

    def _validate_local_path(
        self, project_path: Union[str, Path], project_id: str
    ) -> Path:
        """Make sure the local project directory is usable.

        A missing directory is only reported to the server when the server
        records the project at that same location; otherwise the caller most
        likely passed the wrong path.

        Raises:
            SyncError: If the directory is missing or is not a directory
        """
        path = Path(project_path)
        if path.exists():
            if not path.is_dir():
                raise SyncError(
                    SyncOperation.BAD_PATH,
                    f"project path is not a directory: {project_path}",
                )
            return path

        try:
            project = self.client.get_project(project_id)
        except ProjsyncAPIError as e:
            raise SyncError(SyncOperation.REQUEST, str(e), e) from e

        recorded = project.location_on_disk
        if recorded is None or os.path.normpath(str(project_path)) != os.path.normpath(
            recorded
        ):
            raise SyncError(
                SyncOperation.PROJECT_PATH_MISMATCH,
                f"project path does not exist: {project_path} "
                f"(project is recorded at {recorded})",
            )

        try:
            self.client.notify_missing_local_dir(project_id)
        except ProjsyncAPIError as e:
            raise SyncError(SyncOperation.PROJECT_DIR_MISSING, str(e), e) from e

        raise SyncError(
            SyncOperation.PROJECT_DIR_MISSING,
            f"project path does not exist: {project_path}",
        )

    def _walk_local(
        self,
        project_path: Path,
        rules: SyncRules,
        last_sync: int,
        changes: ChangeSet,
    ) -> bool:
        """Walk the physical project tree.

        Returns:
            True if the reference-path file itself was modified
        """
        ref_paths_changed = False
        for entry in walk_tree(project_path, rules.combined_ignored_paths, last_sync):
            changes.record(entry)
            if entry.is_modified and entry.relative_path == REF_PATHS_FILE_NAME:
                ref_paths_changed = True

        logger.debug(
            f"Local walk: {len(changes.file_list)} file(s), "
            f"{len(changes.directory_list)} dir(s), "
            f"{len(changes.modified_list)} modified"
        )
        return ref_paths_changed

    def _walk_references(
        self,
        project_path: Path,
        rules: SyncRules,
        last_sync: int,
        force_full: bool,
        changes: ChangeSet,
    ) -> list[str]:
        """Walk every reference path.

        Args:
            force_full: Use cutoff 0 for all references, because the
                reference file changed in this pass

        Returns:
            Warnings for references that could not be resolved
        """
        cutoff = 0 if force_full else last_sync
        if force_full:
            logger.debug("Reference file changed, re-syncing all references")

        warnings: list[str] = []
        for ref in rules.ref_paths:
            try:
                for entry in walk_reference(
                    project_path, ref, rules.ignored_paths, cutoff
                ):
                    changes.record(entry)
            except InvalidReferenceError as e:
                logger.debug(f"Skipping reference: {e}")
                warnings.append(str(e))
        return warnings

    def _upload(
        self,
        uploader: UploadCoordinator,
        relative_paths: list[str],
        changes: ChangeSet,
    ) -> None:
        files = [(changes.source_path(p), p) for p in relative_paths]
        for outcome in uploader.upload_all(files):
            changes.add_outcome(outcome)
            if outcome.failed and not self.output.quiet:
                self.output.warning(f"Failed to upload {outcome.file_path}")

    def _reconcile(
        self, project_id: str, changes: ChangeSet, uploader: UploadCoordinator
    ) -> None:
        """Upload files the remote has never seen, whatever their mtime.

        Skipped when the remote file list cannot be fetched.
        """
        try:
            remote_files = self.client.get_project_file_list(project_id)
        except ProjsyncAPIError as e:
            logger.debug(f"Skipping reconciliation, no remote file list: {e}")
            return

        added = [p for p in changes.new_files(remote_files) if not changes.is_modified(p)]
        if not added:
            return

        logger.debug(f"Found {len(added)} file(s) unknown to the remote")
        for relative_path in added:
            changes.add_modified(relative_path)
        self._upload(uploader, added, changes)

    def _complete(
        self, project_id: str, changes: ChangeSet, timestamp: int
    ) -> tuple[str, int]:
        request = changes.to_complete_request(timestamp)
        try:
            return self.client.complete_upload(project_id, request)
        except (ProjsyncAPIError, ValueError) as e:
            raise SyncError(SyncOperation.COMPLETE, str(e), e) from e

    def _display_summary(self, changes: ChangeSet, response: SyncResponse) -> None:
        failed = sum(1 for f in response.uploaded_files if f.failed)
        uploaded = len(response.uploaded_files) - failed

        self.output.print("")
        if response.succeeded:
            self.output.success("Sync complete!")
        else:
            self.output.warning(f"Sync completion returned {response.status}")

        self.output.info(
            f"Files: {len(changes.file_list)}, directories: "
            f"{len(changes.directory_list)}, modified: {len(changes.modified_list)}"
        )
        if uploaded or failed:
            self.output.info(f"  Uploaded: {uploaded}")
        if failed:
            self.output.info(f"  Failed: {failed}")
