"""Build GitHub issue titles, bodies and comments from Jira data."""

from __future__ import annotations

import datetime as dt
import re
from typing import TYPE_CHECKING, Any, Final

from .attachments import is_image
from .lookup import KEY_LINE_LABEL
from .rich_text import RichTextExtractor

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from .identity import ResolvedUser
    from .models import SourceComment, SourceIssue

NOT_SET: Final[str] = "Not set"
DEFAULT_PRIORITY: Final[str] = "Medium"
STATUS_BLOCK_PREFIXES: Final[tuple[str, ...]] = ("Status:", "Due Date:", "Start Date:")
DESCRIPTION_SEPARATOR: Final[str] = "---"
_COMMENT_MARKER_RE = re.compile(r"<!--\s*jira-comment-id:\s*(?P<id>[^\s>]+)\s*-->")


def format_timestamp(iso_timestamp: str) -> str:
    """Format ISO 8601 timestamp to human-readable format.

    Args:
        iso_timestamp: ISO 8601 formatted timestamp string, as sent by Jira
            (e.g. "2024-01-15T10:30:45.123+0000")

    Returns:
        Formatted timestamp (e.g., "2024-01-15 10:30:45Z").
        Returns original value if parsing fails.
    """
    if not iso_timestamp:
        return iso_timestamp

    try:
        timestamp_dt = dt.datetime.fromisoformat(iso_timestamp)
        formatted = timestamp_dt.isoformat(sep=" ", timespec="seconds")
        return formatted.replace("+00:00", "Z")
    except (ValueError, AttributeError):
        return iso_timestamp


def build_issue_title(issue: SourceIssue) -> str:
    title = issue.summary or "New Jira Item"
    return f"{issue.key}: {title}".strip() if issue.key else title


def build_status_block(status: str | None, due_date: str | None, start_date: str | None) -> list[str]:
    return [
        f"Status: {status or NOT_SET}",
        f"Due Date: {due_date or NOT_SET}",
        f"Start Date: {start_date or NOT_SET}",
    ]


def format_attachment(filename: str, url: str) -> str:
    return f"![{filename}]({url})" if is_image(filename) else f"[{filename}]({url})"


def link_attachments(text: str, attachment_urls: Mapping[str, str]) -> str:
    """Point markdown links that reference an attachment by filename at its URL."""
    for filename, url in attachment_urls.items():
        text = text.replace(f"]({filename})", f"]({url})")
    return text


def build_issue_body(
    issue: SourceIssue,
    *,
    description: str,
    jira_link: str = "",
    assignee: ResolvedUser | None = None,
    reporter: ResolvedUser | None = None,
    attachment_urls: Mapping[str, str] | None = None,
    custom_fields: Sequence[tuple[str, str]] = (),
) -> str:
    """Build complete GitHub issue body.

    The body starts with a metadata block (the ``Jira: <KEY>`` line is what the
    lookup protocol searches for), then the status block that status-only
    updates rewrite in place, then the description and attachments.

    Args:
        issue: Jira issue snapshot
        description: Description already converted to markdown
        jira_link: Browse URL of the Jira issue (may be empty)
        assignee: Resolved assignee, if any
        reporter: Resolved reporter, if any
        attachment_urls: Original filename -> URL to link
        custom_fields: (display name, rendered value) pairs

    Returns:
        Complete issue body for GitHub
    """
    lines: list[str] = [f"{KEY_LINE_LABEL}: {issue.key}"]
    if jira_link:
        lines.append(f"Jira Link: {jira_link}")
    if issue.issue_type:
        lines.append(f"Type: {issue.issue_type}")
    if issue.parent:
        parent_summary = f" - {issue.parent.summary}" if issue.parent.summary else ""
        lines.append(f"Parent: {issue.parent.key}{parent_summary}")
    lines.append(f"Priority: {issue.priority or DEFAULT_PRIORITY}")
    lines.append(f"Assignee: {assignee.format() if assignee else 'Unassigned'}")
    if reporter:
        lines.append(f"Reporter: {reporter.format()}")
    lines.extend(f"{name}: {value}" for name, value in custom_fields)

    lines.append("")
    lines.extend(build_status_block(issue.status, issue.due_date, issue.start_date))

    lines += ["", DESCRIPTION_SEPARATOR, "", "Description:", description or "No description"]

    if attachment_urls:
        lines += ["", "Attachments:"]
        lines.extend(f"- {format_attachment(name, url)}" for name, url in attachment_urls.items())

    return "\n".join(lines)


def update_status_block(body: str | None, status: str | None, start_date: str | None, due_date: str | None) -> str:
    """Rewrite the Status / Due Date / Start Date lines of an existing body.

    Only the metadata part above the first ``---`` line is touched, so the
    description can never lose lines. The block replaces the first status line
    found; any other status lines are dropped. Bodies without a status block
    get one appended to the metadata part.
    """
    block = build_status_block(status, due_date, start_date)
    lines = str(body or "").split("\n")
    split_at = lines.index(DESCRIPTION_SEPARATOR) if DESCRIPTION_SEPARATOR in lines else len(lines)
    head, tail = lines[:split_at], lines[split_at:]

    out: list[str] = []
    inserted = False
    for line in head:
        if line.startswith(STATUS_BLOCK_PREFIXES):
            if not inserted:
                out.extend(block)
                inserted = True
            continue
        out.append(line)
    if not inserted:
        out += ["", *block]
        if tail:
            out.append("")
    return "\n".join(out + tail)


def comment_marker(comment_id: str) -> str:
    return f"<!-- jira-comment-id: {comment_id} -->"


def find_comment_marker(body: str | None) -> str | None:
    """Return the Jira comment id embedded in a GitHub comment body, if any."""
    match = _COMMENT_MARKER_RE.search(body or "")
    return match.group("id") if match else None


def build_comment_body(comment: SourceComment, text: str, *, author: ResolvedUser | None = None) -> str:
    """Build an attributed GitHub comment mirroring a Jira comment."""
    author_text = author.format() if author else "Unknown user"
    body = f"**Comment by** {author_text} **on** {format_timestamp(comment.created)}"
    if comment.updated and comment.updated != comment.created:
        body += f" (edited {format_timestamp(comment.updated)})"
    body += "\n\n---\n\n"
    body += text or "_(empty comment)_"
    body += f"\n\n{comment_marker(comment.id)}"
    return body


def format_field_value(value: Any) -> str:  # noqa: ANN401 - custom field values are untyped
    """Render a Jira custom field value as text.

    User-like objects render as their display name, option-like objects as
    their value or name; account ids are never rendered.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, list):
        parts = (format_field_value(v) for v in value)
        return ", ".join(part for part in parts if part)
    if isinstance(value, dict):
        if value.get("type") == "doc":
            return RichTextExtractor().extract(value).replace("\n", " ").strip()
        for key in ("displayName", "value", "name", "title", "key"):
            if value.get(key):
                return str(value[key])
    return ""
