"""Find the GitHub issue that mirrors a Jira key.

There is no mapping store: the Jira key is embedded in the GitHub issue title
(``"<KEY>: ..."``) and body (a ``"Jira: <KEY>"`` line) and re-discovered on
every event.

The search API is fast but eventually consistent right after a write, so an
issue created a moment ago may not be found by it. Listing the most recent
issues carrying the provenance label does not have that lag and is used as the
fallback, or first when the caller needs a fresh answer (the re-check right
before creating an issue).
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Final

from .identity import PROVENANCE_LABEL
from .models import DestinationIssue

if TYPE_CHECKING:
    from .github_client import GitHubClient

logger: logging.Logger = logging.getLogger(__name__)

KEY_LINE_LABEL: Final[str] = "Jira"
FALLBACK_PAGE_SIZE: Final[int] = 100


def matches_key(item: dict[str, Any], key: str) -> bool:
    """True if a GitHub issue object belongs to the given Jira key."""
    if not key or item.get("pull_request"):
        return False
    title = str(item.get("title") or "")
    if title.startswith(f"{key}:"):
        return True
    body = str(item.get("body") or "")
    return re.search(rf"^{KEY_LINE_LABEL}:\s*{re.escape(key)}\s*$", body, re.MULTILINE) is not None


def _first_match(items: Any, key: str) -> DestinationIssue | None:  # noqa: ANN401
    if not isinstance(items, list):
        return None
    for item in items:
        if isinstance(item, dict) and matches_key(item, key):
            return DestinationIssue.from_api(item)
    return None


def search_issue(client: GitHubClient, key: str) -> DestinationIssue | None:
    """Primary lookup through the search API."""
    query = f'repo:{client.repo_path} "{key}" in:title,body is:issue'
    response = client.search_issues(query)
    if not response.ok or not isinstance(response.data, dict):
        logger.warning(f"GitHub search for {key} unavailable (HTTP {response.status}), falling back to listing")
        return None
    return _first_match(response.data.get("items"), key)


def list_issue(
    client: GitHubClient, key: str, provenance_label: str = PROVENANCE_LABEL
) -> DestinationIssue | None:
    """Fallback lookup: scan recent issues carrying the provenance label."""
    response = client.list_issues(labels=provenance_label, state="all", per_page=FALLBACK_PAGE_SIZE)
    if not response.ok:
        logger.warning(f"GitHub issue listing for {key} failed (HTTP {response.status})")
        return None
    return _first_match(response.data, key)


def find_issue(
    client: GitHubClient,
    key: str,
    *,
    provenance_label: str = PROVENANCE_LABEL,
    prefer_fallback: bool = False,
) -> DestinationIssue | None:
    """Locate the GitHub issue for a Jira key, or None if there is none yet."""
    strategies = [
        lambda: search_issue(client, key),
        lambda: list_issue(client, key, provenance_label),
    ]
    if prefer_fallback:
        strategies.reverse()

    for strategy in strategies:
        found = strategy()
        if found is not None:
            logger.debug(f"Found GitHub issue #{found.number} for {key}")
            return found
    return None
