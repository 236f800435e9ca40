"""Data models exchanged between the webhook parser, the engine and GitHub.

These models are read-only snapshots of a single webhook delivery. They are
never persisted: the next event for the same Jira key supersedes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

CREATION_EVENTS = frozenset({"jira:issue_created"})
UPDATE_EVENTS = frozenset({"jira:issue_updated"})
COMMENT_SYNC_EVENTS = frozenset({"comment_created", "comment_updated"})


@dataclass(frozen=True)
class UserRef:
    """A Jira user as far as the sync is concerned.

    Only the email address and display name are kept. The opaque Jira account
    id is deliberately not part of the model so it can never leak into
    GitHub-visible output.
    """

    display_name: str = ""
    email: str = ""


@dataclass(frozen=True)
class ParentRef:
    """Back-reference from a subtask/child to its parent issue."""

    key: str
    summary: str = ""


@dataclass(frozen=True)
class SourceAttachment:
    """An attachment listed on the Jira issue."""

    filename: str
    url: str  # Jira content URL, requires Jira credentials
    mime_type: str = ""
    size: int = 0


@dataclass
class SourceIssue:
    """A Jira issue snapshot taken from a webhook payload."""

    key: str
    issue_type: str = ""
    summary: str = ""
    description: Any = None  # ADF document, legacy wiki string, or None
    status: str = ""
    priority: str = ""
    labels: list[str] = field(default_factory=list)
    assignee: UserRef | None = None
    reporter: UserRef | None = None
    parent: ParentRef | None = None
    attachments: list[SourceAttachment] = field(default_factory=list)
    due_date: str | None = None
    start_date: str | None = None
    custom_fields: dict[str, Any] = field(default_factory=dict)
    self_url: str = ""


@dataclass(frozen=True)
class SourceComment:
    """A Jira comment carried by a comment_* webhook event."""

    id: str
    body: Any = None
    author: UserRef | None = None
    created: str = ""
    updated: str = ""


@dataclass(frozen=True)
class ChangeItem:
    """One entry of the changelog attached to a jira:issue_updated event."""

    field: str
    field_id: str = ""
    from_string: str | None = None
    to_string: str | None = None


@dataclass
class WebhookEvent:
    """A parsed Jira webhook delivery."""

    event_type: str
    issue: SourceIssue | None = None
    comment: SourceComment | None = None
    changelog: list[ChangeItem] = field(default_factory=list)
    issue_event_type: str | None = None

    @property
    def is_comment_event(self) -> bool:
        return self.event_type.startswith("comment_")

    @property
    def is_creation(self) -> bool:
        return self.event_type in CREATION_EVENTS

    @property
    def is_update(self) -> bool:
        return self.event_type in UPDATE_EVENTS

    @property
    def changed_fields(self) -> list[str]:
        """Lower-cased names of the fields listed in the changelog."""
        return [item.field.strip().lower() for item in self.changelog if item.field]


@dataclass
class DestinationIssue:
    """A GitHub issue found by the lookup protocol."""

    number: int
    title: str = ""
    body: str = ""
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    state: Literal["open", "closed"] = "open"
    node_id: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> DestinationIssue:
        """Build from a GitHub REST issue object."""
        labels = [
            label if isinstance(label, str) else label.get("name", "")
            for label in data.get("labels") or []
        ]
        assignees = [a.get("login", "") for a in data.get("assignees") or [] if isinstance(a, dict)]
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            body=data.get("body") or "",
            labels=[name for name in labels if name],
            assignees=[login for login in assignees if login],
            state="closed" if data.get("state") == "closed" else "open",
            node_id=data.get("node_id") or "",
        )


@dataclass(frozen=True)
class AttachmentRecord:
    """Outcome of re-hosting one attachment, kept for the current event only."""

    original_filename: str
    sanitized_filename: str
    source_url: str
    destination_url: str
    rehosted: bool
