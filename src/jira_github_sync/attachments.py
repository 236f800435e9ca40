"""Attachment re-hosting from Jira to GitHub release assets."""

from __future__ import annotations

import io
import logging
import re
import unicodedata
from typing import TYPE_CHECKING, Final

import requests
from github import GithubException

from .exceptions import AttachmentError
from .models import AttachmentRecord

if TYPE_CHECKING:
    from collections.abc import Mapping

    import github.GitRelease

    from .github_client import GitHubClient
    from .jira_client import JiraClient

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_RELEASE_TAG: Final[str] = "jira-attachments"
MAX_STEM_LENGTH: Final[int] = 100
# Extensions GitHub does not render as images
_EXTENSION_ALIASES: Final[dict[str, str]] = {"jfif": "jpg"}
IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset({"png", "jpg", "jpeg", "gif", "webp", "svg", "bmp"})

_EXTENSION_RE = re.compile(r"^(.+)\.([A-Za-z0-9]{1,10})$")
_SEPARATOR_RUN_RE = re.compile(r"[._-]{2,}")


def _clean(name: str) -> str:
    name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    name = name.replace("\\", "/").rsplit("/", 1)[-1]
    name = re.sub(r"\s+", "-", name.strip())
    name = re.sub(r"[^A-Za-z0-9._-]", "", name)
    return name.strip("._-")


def sanitize_filename(filename: str) -> str:
    """Make a Jira filename safe to use as a GitHub release asset name.

    The result only contains ``[A-Za-z0-9._-]``, has no repeated separators,
    a lower-case extension and a bounded length. Applying it twice gives the
    same result as applying it once.
    """
    name = _clean(filename)
    match = _EXTENSION_RE.match(name)
    if match:
        stem, ext = match.group(1), match.group(2).lower()
        ext = _EXTENSION_ALIASES.get(ext, ext)
    else:
        # No usable extension: keep dots out of the name so none appears later
        stem, ext = name.replace(".", "_"), ""

    # Runs are collapsed in the stem only so the extension separator survives
    stem = _SEPARATOR_RUN_RE.sub(lambda m: m.group(0)[0], stem)
    stem = stem[:MAX_STEM_LENGTH].rstrip("._-") or "attachment"
    return f"{stem}.{ext}" if ext else stem


def is_image(filename: str) -> bool:
    match = _EXTENSION_RE.match(filename)
    return bool(match) and match.group(2).lower() in IMAGE_EXTENSIONS


class AttachmentRehoster:
    """Downloads attachments from Jira and uploads them to a GitHub release.

    One instance serves one webhook event. Assets are deduplicated by their
    sanitized name only: a new file uploaded under a name that already exists
    in the release is not re-uploaded and the existing asset URL is reused.
    """

    _jira_client: JiraClient
    _github: GitHubClient
    _release_tag: str
    _release: github.GitRelease.GitRelease | None
    _asset_urls: dict[str, str] | None

    def __init__(
        self,
        jira_client: JiraClient,
        github_client: GitHubClient,
        *,
        release_tag: str = DEFAULT_RELEASE_TAG,
    ) -> None:
        self._jira_client = jira_client
        self._github = github_client
        self._release_tag = release_tag
        self._release = None
        self._asset_urls = None
        self.records: list[AttachmentRecord] = []

    @property
    def attachments_release(self) -> github.GitRelease.GitRelease:
        """Get or create the release storing attachments (cached)."""
        if self._release is None:
            repo = self._github.repository

            for release in repo.get_releases():
                if release.tag_name == self._release_tag:
                    logger.debug(f"Using existing attachments release: {release.tag_name}")
                    self._release = release
                    return self._release

            # Published pre-release: asset URLs of drafts are not public
            logger.info(f"Creating '{self._release_tag}' release for Jira attachments")
            self._release = repo.create_git_release(
                tag=self._release_tag,
                name="Jira attachments",
                message="Storage for attachments synced from Jira. Do not delete.",
                draft=False,
                prerelease=True,
            )

        return self._release

    def _existing_assets(self, release: github.GitRelease.GitRelease) -> dict[str, str]:
        if self._asset_urls is None:
            self._asset_urls = {asset.name: asset.browser_download_url for asset in release.get_assets()}
        return self._asset_urls

    def process_images(self, attachments: Mapping[str, str]) -> dict[str, str]:
        """Re-host attachments and return their public URLs.

        Args:
            attachments: Original filename -> Jira content URL

        Returns:
            Original filename -> URL to link in GitHub. Attachments that could
            not be re-hosted keep their Jira URL.
        """
        urls: dict[str, str] = {}
        for filename, source_url in attachments.items():
            record = self._rehost(filename, source_url)
            self.records.append(record)
            urls[filename] = record.destination_url
        return urls

    def _rehost(self, filename: str, source_url: str) -> AttachmentRecord:
        sanitized = sanitize_filename(filename)

        def fallback() -> AttachmentRecord:
            return AttachmentRecord(filename, sanitized, source_url, source_url, rehosted=False)

        try:
            release = self.attachments_release
            existing = self._existing_assets(release)
        except (GithubException, requests.RequestException) as e:
            logger.warning(f"Attachments release unavailable, linking {filename} to Jira: {e}")
            return fallback()

        if sanitized in existing:
            logger.debug(f"Asset {sanitized} already uploaded, reusing it")
            return AttachmentRecord(filename, sanitized, source_url, existing[sanitized], rehosted=True)

        try:
            downloaded = self._jira_client.download(source_url)
        except AttachmentError as e:
            logger.warning(f"Could not download attachment {filename}, linking to Jira instead: {e}")
            return fallback()

        # GitHub rejects uploads with 0 bytes
        if not downloaded.content:
            logger.warning(f"Skipping empty attachment {filename}, linking to Jira instead")
            return fallback()

        try:
            asset = release.upload_asset_from_memory(
                io.BytesIO(downloaded.content),
                len(downloaded.content),
                name=sanitized,
                content_type=downloaded.content_type or "application/octet-stream",
            )
        except (GithubException, requests.RequestException) as e:
            logger.warning(f"Failed to upload attachment {filename}, linking to Jira instead: {e}")
            return fallback()

        existing[sanitized] = asset.browser_download_url
        logger.debug(f"Uploaded {filename} as {sanitized}: {asset.browser_download_url}")
        return AttachmentRecord(filename, sanitized, source_url, asset.browser_download_url, rehosted=True)
