"""Async HTTP client wrapper for the Zoom REST API.

Provides ZoomClient with retry logic (tenacity, 3 attempts, exponential
backoff 1-10s) for transient failures: connection errors, timeouts, and
5xx responses. Client errors (4xx) are raised immediately.

Every call is authenticated with the requesting user's stored access
token; the client holds no credentials of its own.
"""

from __future__ import annotations

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)

CAPTION_FILE_TYPES = ("TRANSCRIPT", "CC")


def _is_transient(exc: BaseException) -> bool:
    """Retry on network failures and provider-side (5xx) errors only."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


_zoom_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


def find_transcript_file(recording_files: list[dict]) -> dict | None:
    """Return the first caption-track file of a recording, if any.

    A file qualifies when its declared ``file_type`` is ``TRANSCRIPT`` or
    ``CC``; file extensions are not consulted.
    """
    for recording_file in recording_files:
        if recording_file.get("file_type") in CAPTION_FILE_TYPES:
            return recording_file
    return None


class ZoomClient:
    """Async client for the Zoom REST API.

    Args:
        base_url: API root (default ``https://api.zoom.us/v2``).
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    TIMEOUT_DOWNLOAD = 60.0
    TIMEOUT_READ = 15.0

    def __init__(
        self,
        base_url: str = "https://api.zoom.us/v2",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self, access_token: str, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client bearing the user's access token."""
        return httpx.AsyncClient(
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    @_zoom_retry
    async def download_file(self, download_url: str, access_token: str) -> bytes:
        """Download a recording file (caption tracks are small VTT files).

        Args:
            download_url: The file's ``download_url`` from the recording listing.
            access_token: The user's Zoom access token.

        Returns:
            Raw file bytes.
        """
        async with self._client(access_token, self.TIMEOUT_DOWNLOAD) as client:
            response = await client.get(download_url)
            response.raise_for_status()
            logger.info(
                "zoom.file_downloaded",
                size_bytes=len(response.content),
            )
            return response.content

    @_zoom_retry
    async def list_previous_meetings(self, access_token: str) -> list[dict]:
        """List the user's past meetings (first page, up to 50).

        GET /users/me/meetings?type=previous_meetings&page_size=50
        """
        async with self._client(access_token, self.TIMEOUT_READ) as client:
            response = await client.get(
                f"{self._base_url}/users/me/meetings",
                params={"type": "previous_meetings", "page_size": 50},
            )
            response.raise_for_status()
            meetings = response.json().get("meetings", [])
            logger.info("zoom.meetings_listed", count=len(meetings))
            return meetings

    @_zoom_retry
    async def get_recording_files(
        self, access_token: str, meeting_id: str
    ) -> list[dict]:
        """Get the recording files of one meeting.

        GET /meetings/{meeting_id}/recordings. A meeting without a cloud
        recording answers 404, which is returned as an empty list.
        """
        async with self._client(access_token, self.TIMEOUT_READ) as client:
            response = await client.get(
                f"{self._base_url}/meetings/{meeting_id}/recordings",
            )
            if response.status_code == 404:
                return []
            response.raise_for_status()
            return response.json().get("recording_files", [])
