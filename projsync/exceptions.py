"""Exceptions raised by projsync."""

from enum import Enum
from typing import Optional


class ProjsyncError(Exception):
    """Base exception for all projsync errors."""


class ProjsyncConfigError(ProjsyncError):
    """Raised when the client configuration is incomplete."""


class ProjsyncAPIError(ProjsyncError):
    """Raised when a request to the project server fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProjsyncAuthenticationError(ProjsyncAPIError):
    """Raised when the server rejects the access token (401)."""


class ProjsyncPermissionError(ProjsyncAPIError):
    """Raised when access to a resource is forbidden (403)."""


class ProjsyncNotFoundError(ProjsyncAPIError):
    """Raised when the requested project or resource does not exist (404)."""


class ProjsyncRateLimitError(ProjsyncAPIError):
    """Raised when the server asks the client to slow down (429)."""


class ProjsyncNetworkError(ProjsyncAPIError):
    """Raised when the request never produced an HTTP response."""


class ProjsyncInvalidResponseError(ProjsyncAPIError):
    """Raised when the server response cannot be interpreted."""


class SyncOperation(str, Enum):
    """Phase tag carried by a fatal sync error."""

    BAD_PATH = "sync_bad_path"
    PROJECT_PATH_MISMATCH = "sync_path_mismatch"
    PROJECT_DIR_MISSING = "sync_missing_dir"
    REQUEST = "sync_request"
    SYNC_WALK = "sync_walk"
    COMPLETE = "sync_complete"


class SyncError(ProjsyncError):
    """Fatal error that aborts a sync pass.

    Attributes:
        operation: Phase of the pass that failed
        cause: Underlying exception, if any
        description: Human readable description
    """

    def __init__(
        self,
        operation: SyncOperation,
        description: str,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(description)
        self.operation = operation
        self.description = description
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.operation.value}: {self.description}"


class InvalidReferenceError(ProjsyncError):
    """A reference path whose source is missing or is a directory.

    Not fatal: the engine records it as a warning and continues the pass.
    """

    def __init__(self, source: str, reason: str):
        super().__init__(f"invalid file reference {source!r}: {reason}")
        self.source = source
        self.reason = reason
