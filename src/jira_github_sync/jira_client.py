"""Read-only access to the Jira REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final
from urllib.parse import urljoin, urlsplit

import requests

from .exceptions import AttachmentError

logger: logging.Logger = logging.getLogger(__name__)

_FIELDS_PATH: Final[str] = "/rest/api/3/field"
DEFAULT_TIMEOUT: Final[float] = 15.0
DEFAULT_MAX_REDIRECTS: Final[int] = 5


@dataclass(frozen=True)
class ApiResponse:
    """HTTP status and decoded body of a Jira call."""

    status: int
    data: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class DownloadedFile:
    """Attachment bytes fetched from Jira."""

    url: str
    content: bytes
    content_type: str


class JiraClient:
    """Minimal Jira client: field metadata and attachment downloads.

    Non-2xx answers are returned, not raised, so callers can decide what is
    fatal. Credentials are only ever sent to the configured Jira host, never to
    the storage hosts Jira redirects attachment downloads to.
    """

    def __init__(
        self,
        base_url: str,
        email: str | None = None,
        api_token: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url: str = base_url.rstrip("/")
        self.timeout: float = timeout
        self.max_redirects: int = max_redirects
        self._auth: tuple[str, str] | None = (email, api_token) if email and api_token else None
        self._session: requests.Session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json", "User-Agent": "jira-github-sync"})

    def browse_url(self, key: str) -> str:
        """Human-facing URL of an issue, or an empty string without a base URL."""
        return f"{self.base_url}/browse/{key}" if self.base_url and key else ""

    def _auth_for(self, url: str) -> tuple[str, str] | None:
        if self._auth is None or not self.base_url:
            return None
        return self._auth if urlsplit(url).netloc == urlsplit(self.base_url).netloc else None

    def get_fields(self) -> ApiResponse:
        """Fetch the field metadata list (``GET /rest/api/3/field``)."""
        url = f"{self.base_url}{_FIELDS_PATH}"
        try:
            response = self._session.get(url, auth=self._auth, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Failed to fetch Jira field metadata: {e}")
            return ApiResponse(status=0, data=None)

        try:
            data = response.json()
        except ValueError:
            data = response.text
        return ApiResponse(status=response.status_code, data=data)

    def download(self, url: str) -> DownloadedFile:
        """Download an attachment, following at most ``max_redirects`` redirects.

        Raises:
            AttachmentError: On too many redirects, a non-2xx answer, or a
                transport error (including timeouts)
        """
        current = url
        for _ in range(self.max_redirects + 1):
            try:
                response = self._session.get(
                    current, auth=self._auth_for(current), timeout=self.timeout, allow_redirects=False
                )
            except requests.RequestException as e:
                msg = f"Failed to download {url}: {e}"
                raise AttachmentError(msg) from e

            if response.is_redirect:
                location = response.headers.get("Location")
                if not location:
                    msg = f"Redirect without Location header while downloading {url}"
                    raise AttachmentError(msg)
                current = urljoin(current, location)
                logger.debug(f"Following redirect for attachment download to {urlsplit(current).netloc}")
                continue

            if not 200 <= response.status_code < 300:
                msg = f"Failed to download {url}: HTTP {response.status_code}"
                raise AttachmentError(msg)

            return DownloadedFile(
                url=current,
                content=response.content,
                content_type=response.headers.get("Content-Type", "application/octet-stream"),
            )

        msg = f"Too many redirects (more than {self.max_redirects}) while downloading {url}"
        raise AttachmentError(msg)
