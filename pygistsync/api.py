"""API client for the GitHub Gist document store."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Optional

import httpx

from .config import config
from .exceptions import (
    GistAPIError,
    GistAuthenticationError,
    GistConfigError,
    GistInvalidResponseError,
    GistNetworkError,
    GistNotFoundError,
    GistPermissionError,
    GistRateLimitError,
)
from .models import GistDocument
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY

logger = logging.getLogger(__name__)

# GitHub rejects gists without files, so new gists get a placeholder entry
PLACEHOLDER_FILE_NAME = "init"
PLACEHOLDER_FILE_CONTENT = "// pygistsync"


class GistClient:
    """Client for reading and writing settings gists."""

    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
    ):
        """Initialize the Gist API client.

        Args:
            token: Optional GitHub token (uses config if not provided)
            api_url: Optional API base URL, e.g. for GitHub Enterprise
                (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        self.token = token or config.token
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        if not self.token:
            raise GistConfigError(
                "Token not configured. Please set GISTSYNC_TOKEN environment "
                "variable or run 'pygistsync init'."
            )

        self._client: httpx.Client | None = None

    def __enter__(self) -> GistClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Transient failures
        if isinstance(exception, (GistNetworkError, GistRateLimitError)):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            return 500 <= exception.response.status_code < 600

        return False

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
        """Map an HTTP error to a pygistsync exception.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise GistAuthenticationError("Invalid token or unauthorized access") from e
        elif status_code == 404:
            raise GistNotFoundError("Gist not found") from e
        elif status_code == 429 or (
            status_code == 403
            and e.response.headers.get("X-RateLimit-Remaining") == "0"
        ):
            error = GistRateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)
        elif status_code == 403:
            raise GistPermissionError(
                "Access forbidden - check the token's gist scope"
            ) from e

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict) and error_data.get("message"):
                    error_msg = f"{error_msg}: {error_data['message']}"
        except ValueError:
            # Not JSON, keep the status-based message
            pass

        error = GistAPIError(error_msg)
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return (error, should_retry)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            GistAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "json" not in content_type:
                    raise GistInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise GistInvalidResponseError(
                            "Invalid JSON response from server"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if isinstance(error, GistRateLimitError) and (
                        retry_after and retry_after.isdigit()
                    ):
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        "%s %s failed (%s), retrying in %.1fs",
                        method,
                        endpoint,
                        error,
                        delay,
                    )
                    time.sleep(delay)
                    continue
                raise error from e
            except GistAPIError:
                raise
            except httpx.RequestError as e:
                error = GistNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise GistAPIError("Request failed after all retry attempts")

    # =========================
    # User
    # =========================

    def get_authenticated_user(self) -> dict[str, Any]:
        """Get the user the token belongs to (``GET /user``)."""
        result: dict[str, Any] = self._request("GET", "/user")
        return result

    def get_user_login(self) -> Optional[str]:
        """Return the authenticated login, trimmed (None if absent)."""
        login = self.get_authenticated_user().get("login")
        return str(login).strip() if login else None

    # =========================
    # Gist Operations
    # =========================

    def create_gist(self, public: bool, description: str) -> str:
        """Create an (almost) empty gist.

        Args:
            public: Whether the gist is public
            description: Gist description

        Returns:
            Id of the new gist

        Raises:
            GistAPIError: If creation fails or no id is returned
        """
        payload = {
            "description": description,
            "public": public,
            "files": {PLACEHOLDER_FILE_NAME: {"content": PLACEHOLDER_FILE_CONTENT}},
        }
        result: dict[str, Any] = self._request("POST", "/gists", json=payload)
        gist_id = result.get("id")
        if not gist_id:
            raise GistInvalidResponseError("Gist creation returned no id")
        logger.debug("Created gist %s (public=%s)", gist_id, public)
        return str(gist_id)

    def read_gist(self, gist_id: str) -> GistDocument:
        """Read the complete remote document set of a gist.

        Truncated file contents (GitHub truncates large files) are fetched
        from their raw URL.

        Args:
            gist_id: Gist id

        Returns:
            GistDocument with all files
        """
        result: dict[str, Any] = self._request("GET", f"/gists/{gist_id}")
        document = GistDocument.from_dict(result)
        for gist_file in document.files.values():
            if gist_file.truncated and gist_file.raw_url:
                gist_file.content = self._fetch_raw(gist_file.raw_url)
                gist_file.truncated = False
        logger.debug("Read gist %s with %d file(s)", gist_id, len(document.files))
        return document

    def update_gist(
        self, gist_id: str, files: dict[str, Optional[str]]
    ) -> GistDocument:
        """Replace the gist's file set in one call (``PATCH /gists/{id}``).

        Args:
            gist_id: Gist id
            files: Remote key -> content; a None content deletes the entry

        Returns:
            The updated gist
        """
        payload = {
            "files": {
                name: (None if content is None else {"content": content})
                for name, content in files.items()
            }
        }
        result: dict[str, Any] = self._request(
            "PATCH", f"/gists/{gist_id}", json=payload
        )
        logger.debug("Saved %d file(s) to gist %s", len(files), gist_id)
        return GistDocument.from_dict(result)

    def _fetch_raw(self, raw_url: str) -> str:
        try:
            response = self._get_client().get(raw_url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GistAPIError(
                f"Failed to fetch truncated file ({e.response.status_code})"
            ) from e
        except httpx.RequestError as e:
            raise GistNetworkError(f"Network error: {e}") from e
        return response.text
