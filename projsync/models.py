"""Wire types exchanged with the project server."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ProjectInfo:
    """Project metadata as recorded by the server."""

    project_id: str
    name: Optional[str] = None
    location_on_disk: Optional[str] = None
    """Local path the server believes the project lives at"""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectInfo":
        return cls(
            project_id=str(data.get("projectID", "")),
            name=data.get("name"),
            location_on_disk=data.get("locOnDisk"),
        )


@dataclass
class FileUploadMsg:
    """Envelope for a single uploaded file."""

    is_directory: bool
    mode: int
    """POSIX permission bits"""

    relative_path: str
    """Forward-slash path relative to the project root"""

    message: str
    """zlib-compressed, base64-encoded file content"""

    def to_dict(self) -> dict[str, Any]:
        return {
            "isDirectory": self.is_directory,
            "mode": self.mode,
            "path": self.relative_path,
            "msg": self.message,
        }


@dataclass
class CompleteRequest:
    """Manifest sent once at the end of a pass."""

    file_list: list[str]
    directory_list: list[str]
    modified_list: list[str]
    time_stamp: int
    """Wall-clock time (ms since epoch) at which the pass began"""

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileList": list(self.file_list),
            "directoryList": list(self.directory_list),
            "modifiedList": list(self.modified_list),
            "timeStamp": self.time_stamp,
        }


@dataclass
class UploadedFile:
    """Outcome of uploading one file.

    A ``status_code`` of 0 means the upload never got a server response
    (stat, read, encode or transport failure).
    """

    file_path: str
    status: str
    status_code: int

    @property
    def failed(self) -> bool:
        return self.status_code == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "status": self.status,
            "statusCode": self.status_code,
        }


@dataclass
class SyncResponse:
    """Result of a sync pass returned to the caller."""

    status: str
    status_code: int
    uploaded_files: list[UploadedFile] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    """Non-fatal problems (invalid references) met during the pass"""

    time_stamp: int = 0
    """Start time of the pass in milliseconds, the next pass's cutoff"""

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status_code < 300

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "statusCode": self.status_code,
            "uploadedFiles": [f.to_dict() for f in self.uploaded_files],
            "warnings": list(self.warnings),
        }
