"""Per-file upload stage of a sync pass."""

import base64
import logging
import time
import zlib
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from ..api import ProjectClient
from ..exceptions import ProjsyncAPIError
from ..models import FileUploadMsg, UploadedFile

logger = logging.getLogger(__name__)

FAILED_STATUS = "Failed"


def build_upload_message(path: Path, relative_path: str) -> FileUploadMsg:
    """Package a file's content into an upload envelope.

    The raw bytes are zlib-compressed and base64-encoded.

    Args:
        path: File on disk
        relative_path: Forward-slash path the remote should store it under

    Returns:
        FileUploadMsg ready to send

    Raises:
        OSError: If the file cannot be stat'ed or read
    """
    st = path.stat()
    content = path.read_bytes()
    encoded = base64.b64encode(zlib.compress(content)).decode("ascii")
    return FileUploadMsg(
        is_directory=path.is_dir(),
        mode=st.st_mode & 0o777,
        relative_path=relative_path,
        message=encoded,
    )


class UploadCoordinator:
    """Uploads modified files one request per file.

    A failed upload is reported as an outcome with status ``Failed`` and
    code 0; it never stops the remaining uploads. There are no retries.
    """

    def __init__(self, client: ProjectClient, project_id: str, max_workers: int = 1):
        """Initialize upload coordinator.

        Args:
            client: Project server client
            project_id: Project to upload into
            max_workers: Number of parallel uploads (default: 1)
        """
        self.client = client
        self.project_id = project_id
        self.max_workers = max(1, max_workers)

    def upload_file(self, path: Path, relative_path: str) -> UploadedFile:
        """Upload a single file.

        Args:
            path: File on disk
            relative_path: Forward-slash path relative to the project root

        Returns:
            UploadedFile with the server's status, or Failed/0
        """
        failed = UploadedFile(file_path=relative_path, status=FAILED_STATUS, status_code=0)

        try:
            message = build_upload_message(path, relative_path)
        except (OSError, ValueError) as e:
            logger.debug(f"Could not read {path} for upload: {e}")
            return failed

        start = time.time()
        try:
            status, status_code = self.client.upload_file(self.project_id, message)
        except (ProjsyncAPIError, ValueError) as e:
            # ValueError covers bodies httpx cannot encode
            logger.debug(f"Upload of {relative_path} failed: {e}")
            return failed

        logger.debug(
            f"Uploaded {relative_path} in {time.time() - start:.2f}s ({status})"
        )
        return UploadedFile(
            file_path=relative_path, status=status, status_code=status_code
        )

    def upload_all(self, files: list[tuple[Path, str]]) -> list[UploadedFile]:
        """Upload every file independently.

        Args:
            files: (path on disk, relative path) pairs

        Returns:
            Outcomes in the same order as the input
        """
        if self.max_workers == 1 or len(files) <= 1:
            return [self.upload_file(path, rel) for path, rel in files]

        logger.debug(f"Uploading {len(files)} files with {self.max_workers} workers")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(lambda item: self.upload_file(*item), files))
