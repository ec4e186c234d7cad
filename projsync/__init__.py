"""projsync - incremental one-way sync of local projects to a project server."""

from .api import ProjectClient
from .exceptions import (
    InvalidReferenceError,
    ProjsyncAPIError,
    ProjsyncAuthenticationError,
    ProjsyncConfigError,
    ProjsyncError,
    ProjsyncInvalidResponseError,
    ProjsyncNetworkError,
    ProjsyncNotFoundError,
    ProjsyncPermissionError,
    ProjsyncRateLimitError,
    SyncError,
    SyncOperation,
)
from .models import CompleteRequest, FileUploadMsg, ProjectInfo, SyncResponse, UploadedFile

__version__ = "0.1.0"

__all__ = [
    "ProjectClient",
    "ProjsyncError",
    "ProjsyncAPIError",
    "ProjsyncAuthenticationError",
    "ProjsyncConfigError",
    "ProjsyncInvalidResponseError",
    "ProjsyncNetworkError",
    "ProjsyncNotFoundError",
    "ProjsyncPermissionError",
    "ProjsyncRateLimitError",
    "SyncError",
    "SyncOperation",
    "InvalidReferenceError",
    "CompleteRequest",
    "FileUploadMsg",
    "ProjectInfo",
    "SyncResponse",
    "UploadedFile",
]
