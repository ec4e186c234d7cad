"""HTTP client for the project server."""

from __future__ import annotations

import logging
import random
import time
from typing import Any

import httpx

from .config import config
from .exceptions import (
    ProjsyncAPIError,
    ProjsyncAuthenticationError,
    ProjsyncConfigError,
    ProjsyncInvalidResponseError,
    ProjsyncNetworkError,
    ProjsyncNotFoundError,
    ProjsyncPermissionError,
    ProjsyncRateLimitError,
)
from .models import CompleteRequest, FileUploadMsg, ProjectInfo
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


def status_text(response: httpx.Response) -> str:
    """Render a response status the way HTTP status lines read, e.g. ``200 OK``."""
    reason = response.reason_phrase
    if reason:
        return f"{response.status_code} {reason}"
    return str(response.status_code)


class ProjectClient:
    """Client for the project server's sync endpoints."""

    def __init__(
        self,
        api_url: str | None = None,
        access_token: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the project client.

        Args:
            api_url: Base URL of the server (uses config if not provided)
            access_token: Optional bearer token (uses config if not provided)
            max_retries: Maximum retry attempts for metadata requests
            retry_delay: Initial delay between retries in seconds
            timeout: Request timeout in seconds
            transport: Optional httpx transport, mainly for tests
        """
        api_url = api_url or config.api_url
        if not api_url:
            raise ProjsyncConfigError(
                "Server URL not configured. Please set PROJSYNC_API_URL "
                "or run 'projsync init'."
            )
        self.api_url = api_url.rstrip("/")
        self.access_token = access_token or config.access_token
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            headers = {}
            if self.access_token:
                headers["Authorization"] = f"Bearer {self.access_token}"
            self._client = httpx.Client(
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> ProjectClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _url(self, endpoint: str) -> str:
        return f"{self.api_url}/{endpoint.lstrip('/')}"

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # +/- 25% jitter
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Map an HTTP error to a projsync exception.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            return ProjsyncAuthenticationError(
                "Invalid access token or unauthorized access", status_code
            ), False
        if status_code == 403:
            return ProjsyncPermissionError(
                "Access forbidden - check your permissions", status_code
            ), False
        if status_code == 404:
            return ProjsyncNotFoundError("Resource not found", status_code), False
        if status_code == 429:
            return ProjsyncRateLimitError(
                "Rate limit exceeded - please try again later", status_code
            ), attempt < self.max_retries

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    msg = (
                        error_data.get("message")
                        or error_data.get("error")
                        or error_data.get("detail")
                    )
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, keep the status-based message
            pass

        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return ProjsyncAPIError(error_msg, status_code), should_retry

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make a metadata request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Parsed JSON body, or an empty dict for an empty body

        Raises:
            ProjsyncAPIError: If the request fails after all retries
        """
        url = self._url(endpoint)
        client = self._get_client()
        last_exception: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                if not response.content:
                    return {}
                try:
                    return response.json()
                except ValueError as e:
                    raise ProjsyncInvalidResponseError(
                        f"Invalid JSON response from {url}"
                    ) from e

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error
                if should_retry:
                    delay = self._calculate_retry_delay(attempt)
                    if isinstance(error, ProjsyncRateLimitError):
                        retry_after = e.response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            delay = float(retry_after)
                    logger.debug(
                        f"{method} {url} failed ({error}), retrying in {delay:.2f}s"
                    )
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                error = ProjsyncNetworkError(f"Network error: {e}")
                last_exception = error
                if attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"{method} {url} failed ({e}), retrying in {delay:.2f}s")
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise ProjsyncAPIError("Request failed after all retry attempts")

    def _send(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Send a single request without retries or status checks.

        Raises:
            ProjsyncNetworkError: If no response was received
        """
        url = self._url(endpoint)
        try:
            return self._get_client().request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise ProjsyncNetworkError(f"Network error: {e}") from e

    # =========================
    # Project Operations
    # =========================

    def get_project(self, project_id: str) -> ProjectInfo:
        """Fetch the server's record of a project.

        Args:
            project_id: Project ID

        Returns:
            ProjectInfo including the recorded location on disk
        """
        data = self._request("GET", f"/api/v1/projects/{project_id}")
        if not isinstance(data, dict):
            raise ProjsyncInvalidResponseError(
                f"Unexpected project response for {project_id}"
            )
        info = ProjectInfo.from_dict(data)
        if not info.project_id:
            info.project_id = project_id
        return info

    def get_project_file_list(self, project_id: str) -> list[str]:
        """Fetch the list of files the server recorded at the previous pass.

        Args:
            project_id: Project ID

        Returns:
            List of forward-slash relative paths
        """
        data = self._request("GET", f"/api/v1/projects/{project_id}/fileList")
        if isinstance(data, dict):
            # An empty body comes back as {}
            data = data.get("fileList", [])
        if not isinstance(data, list):
            raise ProjsyncInvalidResponseError(
                f"Unexpected file list response for {project_id}"
            )
        return [str(path) for path in data]

    def notify_missing_local_dir(self, project_id: str) -> None:
        """Tell the server the project's local directory has disappeared.

        Raises:
            ProjsyncAPIError: If the server does not answer 200
        """
        response = self._send(
            "POST", f"/api/v1/projects/{project_id}/missingLocalDir"
        )
        if response.status_code != httpx.codes.OK:
            raise ProjsyncAPIError(
                f"Server responded with status code {response.status_code}",
                response.status_code,
            )

    def upload_file(self, project_id: str, message: FileUploadMsg) -> tuple[str, int]:
        """Upload one file envelope.

        Returns:
            Tuple of (status text, status code) from the server

        Raises:
            ProjsyncNetworkError: If no response was received
        """
        response = self._send(
            "PUT",
            f"/api/v1/projects/{project_id}/upload",
            json=message.to_dict(),
        )
        return status_text(response), response.status_code

    def complete_upload(
        self, project_id: str, request: CompleteRequest
    ) -> tuple[str, int]:
        """Send the completion manifest for a pass.

        Returns:
            Tuple of (status text, status code) from the server

        Raises:
            ProjsyncNetworkError: If no response was received
        """
        response = self._send(
            "POST",
            f"/api/v1/projects/{project_id}/upload/end",
            json=request.to_dict(),
        )
        return status_text(response), response.status_code
