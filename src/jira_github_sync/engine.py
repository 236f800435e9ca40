"""
Synchronization engine: turns one Jira webhook delivery into GitHub writes.

The decision is made by two pure functions, :func:`screen_issue_event` and
:func:`decide_issue_action`; :class:`SyncEngine` performs the I/O around them.
No mapping between Jira keys and GitHub issue numbers is stored anywhere, the
lookup protocol re-discovers it on every event.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from .attachments import AttachmentRehoster
from .exceptions import AuthFailure, ConfigurationFailure, SyncError, UpstreamWriteFailure
from .fields import FieldResolver
from .github_client import GitHubClient, get_client
from .identity import ResolvedUser, is_status_label, map_labels, resolve_mention, resolve_user, status_label
from .issue_builder import (
    build_comment_body,
    build_issue_body,
    build_issue_title,
    find_comment_marker,
    format_field_value,
    link_attachments,
    update_status_block,
)
from .jira_client import JiraClient
from .lookup import find_issue
from .models import COMMENT_SYNC_EVENTS, DestinationIssue
from .payload import load_payload, parse_event
from .rich_text import RichTextExtractor
from .signature import validate_signature

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .config import Settings, SyncConfig
    from .fields import FieldMap
    from .models import ParentRef, SourceComment, SourceIssue, UserRef, WebhookEvent

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

PARENT_LINK_FIELDS: Final[frozenset[str]] = frozenset({"parent", "issueparentassociation", "parent link"})
CONTENT_FIELDS: Final[frozenset[str]] = frozenset(
    {"summary", "description", "assignee", "reporter", "attachment", "labels", "priority", "issuetype", "parent"}
)
COMMENTS_PAGE_SIZE: Final[int] = 100


class Action(enum.Enum):
    REJECTED_AUTH = "rejected_auth"
    IGNORED_EVENT = "ignored_event"
    IGNORED_TYPE = "ignored_type"
    IGNORED_NO_TRIGGER = "ignored_no_trigger"
    IGNORED_PARENT_ONLY_CHANGE = "ignored_parent_only_change"
    IGNORED_NO_DESTINATION = "ignored_no_destination"
    IGNORED_ALREADY_SYNCED = "ignored_already_synced"
    CREATE = "create"
    UPDATE_STATUS = "update_status"
    UPDATE_BODY = "update_body"
    SYNC_COMMENT = "sync_comment"
    LINK_PARENT = "link_parent"
    ERROR = "error"


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one webhook delivery, rendered as the HTTP response."""

    status_code: int
    message: str
    action: Action
    issue_number: int | None = None
    follow_ups: tuple[Action, ...] = ()

    def body(self) -> dict[str, Any]:
        return {"message": self.message}


# Decision functions


def is_parent_only_change(event: WebhookEvent) -> bool:
    """True if the changelog is non-empty and only touches the parent link."""
    changed = event.changed_fields
    return bool(changed) and all(name in PARENT_LINK_FIELDS for name in changed)


def trigger_label_added(event: WebhookEvent, trigger_labels: frozenset[str]) -> bool:
    """True if the changelog shows one of the trigger labels being added."""
    for item in event.changelog:
        if item.field.strip().lower() != "labels":
            continue
        # Jira reports label changes as space-separated lists
        added = set((item.to_string or "").split()) - set((item.from_string or "").split())
        if added & trigger_labels:
            return True
    return False


def has_trigger_label(issue: SourceIssue, trigger_labels: frozenset[str]) -> bool:
    return any(label in trigger_labels for label in issue.labels)


def screen_issue_event(event: WebhookEvent, config: SyncConfig) -> Action | None:
    """Filter an issue event before any lookup.

    Returns:
        The ignore action that applies, or None if the event should be looked up
    """
    if not (event.is_creation or event.is_update) or event.issue is None or not event.issue.key:
        return Action.IGNORED_EVENT

    allowed = {t.casefold() for t in config.allowed_types}
    if event.issue.issue_type.casefold() not in allowed:
        return Action.IGNORED_TYPE

    if event.is_update and config.suppress_parent_only_changes and is_parent_only_change(event):
        return Action.IGNORED_PARENT_ONLY_CHANGE

    if not has_trigger_label(event.issue, config.trigger_labels) and not trigger_label_added(
        event, config.trigger_labels
    ):
        return Action.IGNORED_NO_TRIGGER

    return None


def decide_issue_action(event: WebhookEvent, existing: DestinationIssue | None) -> Action:
    """Pick the write to perform given the lookup result."""
    if existing is None:
        return Action.CREATE
    if event.is_creation:
        return Action.IGNORED_ALREADY_SYNCED
    if any(name in CONTENT_FIELDS for name in event.changed_fields):
        return Action.UPDATE_BODY
    return Action.UPDATE_STATUS


_IGNORE_MESSAGES: Final[dict[Action, str]] = {
    Action.IGNORED_EVENT: "Ignored: event type not synced",
    Action.IGNORED_TYPE: "Ignored: issue type not synced",
    Action.IGNORED_NO_TRIGGER: "Ignored: trigger label not present",
    Action.IGNORED_PARENT_ONLY_CHANGE: "Ignored: parent link change only",
    Action.IGNORED_NO_DESTINATION: "Ignored: no corresponding GitHub issue",
}


class SyncEngine:
    """Executes the sync for webhook deliveries.

    One instance can serve concurrent deliveries: the only state shared between
    them is the :class:`FieldMap`, everything else is per call.
    """

    def __init__(
        self,
        config: SyncConfig,
        github_client: GitHubClient | None,
        jira_client: JiraClient,
        field_map: FieldMap,
    ) -> None:
        self.config: SyncConfig = config
        self.github: GitHubClient | None = github_client
        self.jira: JiraClient = jira_client
        self.fields: FieldResolver = FieldResolver(jira_client, field_map)
        self.extractor: RichTextExtractor = RichTextExtractor(
            resolve_mention=lambda name: resolve_mention(name, config.user_map)
        )

    def handle(
        self,
        raw_body: bytes | str,
        headers: Mapping[str, str],
        query: Mapping[str, str] | None = None,
    ) -> SyncResult:
        """Process one delivery and return the response to send back to Jira."""
        try:
            return self._handle(raw_body, headers, query)
        except AuthFailure as e:
            logger.warning(f"Rejected webhook delivery: {e}")
            return SyncResult(e.status_code, "Unauthorized", Action.REJECTED_AUTH)
        except SyncError as e:
            logger.error(f"Webhook processing failed: {e}")
            return SyncResult(e.status_code, str(e), Action.ERROR)
        except Exception:
            logger.exception("Unexpected error while processing Jira webhook")
            return SyncResult(500, "Internal server error", Action.ERROR)

    def _handle(
        self,
        raw_body: bytes | str,
        headers: Mapping[str, str],
        query: Mapping[str, str] | None,
    ) -> SyncResult:
        if not validate_signature(raw_body, headers, query, self.config.webhook_secret):
            msg = "Invalid webhook signature"
            raise AuthFailure(msg)

        data = load_payload(raw_body)

        if self.github is None or not self.config.github_owner or not self.config.github_repo:
            msg = "GitHub repository or token not configured"
            raise ConfigurationFailure(msg)

        start_date_field = self.fields.resolve_field_name(self.config.start_date_field)
        event = parse_event(data, start_date_field=start_date_field)
        key = event.issue.key if event.issue else ""
        logger.info(f"Received Jira webhook {event.event_type or '<none>'} for {key or '<no issue>'}")

        if event.is_comment_event:
            return self._handle_comment(event, self.github)
        return self._handle_issue(event, self.github)

    @staticmethod
    def _ignored(action: Action, detail: str, issue_number: int | None = None) -> SyncResult:
        logger.info(f"{_IGNORE_MESSAGES.get(action, 'Ignored')} ({detail})")
        return SyncResult(200, _IGNORE_MESSAGES.get(action, "Ignored"), action, issue_number)

    # Comments

    def _handle_comment(self, event: WebhookEvent, github: GitHubClient) -> SyncResult:
        comment = event.comment
        if event.event_type not in COMMENT_SYNC_EVENTS or comment is None or event.issue is None:
            return self._ignored(Action.IGNORED_EVENT, event.event_type)

        key = event.issue.key
        existing = find_issue(github, key, provenance_label=self.config.provenance_label)
        if existing is None:
            return self._ignored(Action.IGNORED_NO_DESTINATION, key)

        body = build_comment_body(
            comment,
            self.extractor.extract(comment.body),
            author=self._resolve(comment.author),
        )

        synced_id = self._find_synced_comment(github, existing.number, comment)
        if synced_id is not None:
            response = github.update_comment(synced_id, body)
            verb = "Updated"
        else:
            response = github.create_comment(existing.number, body)
            verb = "Created"
        if not response.ok:
            msg = f"GitHub rejected comment on #{existing.number} for {key}: HTTP {response.status} {response.message}"
            raise UpstreamWriteFailure(msg)

        logger.info(f"{verb} comment for Jira comment {comment.id} on GitHub issue #{existing.number}")
        return SyncResult(201, "Comment synced", Action.SYNC_COMMENT, existing.number)

    @staticmethod
    def _find_synced_comment(github: GitHubClient, number: int, comment: SourceComment) -> int | None:
        """Id of the GitHub comment already mirroring this Jira comment, if any."""
        page = 1
        while True:
            response = github.list_comments(number, page=page, per_page=COMMENTS_PAGE_SIZE)
            if not response.ok or not isinstance(response.data, list):
                logger.warning(f"Could not list comments of #{number} (HTTP {response.status}), creating a new one")
                return None
            for item in response.data:
                if isinstance(item, dict) and find_comment_marker(item.get("body")) == comment.id:
                    return int(item["id"])
            if len(response.data) < COMMENTS_PAGE_SIZE:
                return None
            page += 1

    # Issues

    def _handle_issue(self, event: WebhookEvent, github: GitHubClient) -> SyncResult:
        screened = screen_issue_event(event, self.config)
        issue = event.issue
        if screened is not None or issue is None:
            detail = f"{event.event_type} {issue.key if issue else ''}".strip()
            return self._ignored(screened or Action.IGNORED_EVENT, detail)

        existing = find_issue(github, issue.key, provenance_label=self.config.provenance_label)
        action = decide_issue_action(event, existing)

        if action is Action.CREATE or existing is None:
            return self._create(issue, github)
        if action is Action.IGNORED_ALREADY_SYNCED:
            return self._already_synced(issue, existing)
        if action is Action.UPDATE_BODY:
            return self._update_body(issue, existing, github)
        return self._update_status(issue, existing, github)

    @staticmethod
    def _already_synced(issue: SourceIssue, existing: DestinationIssue) -> SyncResult:
        logger.info(f"{issue.key} already synced as GitHub issue #{existing.number}")
        return SyncResult(
            200, f"Already synced as #{existing.number}", Action.IGNORED_ALREADY_SYNCED, existing.number
        )

    def _create(self, issue: SourceIssue, github: GitHubClient) -> SyncResult:
        payload = self._issue_payload(issue, github)

        # Re-check right before writing; the listing sees very recent issues
        existing = find_issue(github, issue.key, provenance_label=self.config.provenance_label, prefer_fallback=True)
        if existing is not None:
            return self._already_synced(issue, existing)

        response = github.create_issue(payload)
        if not response.ok or not isinstance(response.data, dict):
            msg = f"GitHub rejected issue creation for {issue.key}: HTTP {response.status} {response.message}"
            raise UpstreamWriteFailure(msg)

        created = DestinationIssue.from_api(response.data)
        logger.info(f"Created GitHub issue #{created.number} for {issue.key}")

        # Issues are always created open
        if self.config.is_closed_status(issue.status):
            closed = github.update_issue(created.number, {"state": "closed"})
            if not closed.ok:
                logger.warning(f"Could not close GitHub issue #{created.number}: HTTP {closed.status}")

        self._add_to_projects(created, github)

        follow_ups: tuple[Action, ...] = ()
        if issue.parent and self._link_parent(issue, issue.parent, created.number, github):
            follow_ups = (Action.LINK_PARENT,)

        return SyncResult(201, f"Created GitHub issue #{created.number}", Action.CREATE, created.number, follow_ups)

    def _update_body(self, issue: SourceIssue, existing: DestinationIssue, github: GitHubClient) -> SyncResult:
        payload = self._issue_payload(issue, github)
        payload["state"] = self._state(issue)
        response = github.update_issue(existing.number, payload)
        if not response.ok:
            msg = f"GitHub rejected update of #{existing.number} for {issue.key}: HTTP {response.status} {response.message}"
            raise UpstreamWriteFailure(msg)
        logger.info(f"Updated GitHub issue #{existing.number} from {issue.key}")
        return SyncResult(200, f"Updated GitHub issue #{existing.number}", Action.UPDATE_BODY, existing.number)

    def _update_status(self, issue: SourceIssue, existing: DestinationIssue, github: GitHubClient) -> SyncResult:
        response = github.get_issue(existing.number)
        current = existing
        if response.ok and isinstance(response.data, dict):
            current = DestinationIssue.from_api(response.data)
        else:
            logger.warning(f"Could not re-read GitHub issue #{existing.number} (HTTP {response.status}), using search result")

        labels = [label for label in current.labels if not is_status_label(label)]
        if self.config.provenance_label not in labels:
            labels.append(self.config.provenance_label)
        new_status_label = status_label(issue.status)
        if new_status_label:
            github.ensure_label(new_status_label)
            labels.append(new_status_label)

        payload = {
            "body": update_status_block(current.body, issue.status, issue.start_date, issue.due_date),
            "labels": labels,
            "state": self._state(issue),
        }
        update = github.update_issue(existing.number, payload)
        if not update.ok:
            msg = f"GitHub rejected status update of #{existing.number}: HTTP {update.status} {update.message}"
            raise UpstreamWriteFailure(msg)
        logger.info(f"Updated status of GitHub issue #{existing.number} to {issue.status or 'unset'}")
        return SyncResult(200, f"Updated status of GitHub issue #{existing.number}", Action.UPDATE_STATUS, existing.number)

    def _link_parent(self, issue: SourceIssue, parent_ref: ParentRef, number: int, github: GitHubClient) -> bool:
        """Cross-reference a new child issue and its parent. Never fatal."""
        parent = find_issue(github, parent_ref.key, provenance_label=self.config.provenance_label)
        if parent is None:
            logger.info(f"Parent {parent_ref.key} of {issue.key} has no GitHub issue yet, not linking")
            return False

        child_note = github.create_comment(number, f"Parent issue: #{parent.number} ({parent_ref.key})")
        parent_note = github.create_comment(parent.number, f"Child issue: #{number} ({issue.key})")
        if not (child_note.ok and parent_note.ok):
            logger.warning(f"Could not link #{number} with parent #{parent.number}")
            return False
        logger.info(f"Linked GitHub issue #{number} to parent #{parent.number}")
        return True

    # Payload helpers

    def _state(self, issue: SourceIssue) -> str:
        return "closed" if self.config.is_closed_status(issue.status) else "open"

    def _resolve(self, identity: UserRef | None) -> ResolvedUser | None:
        return resolve_user(identity, self.config.user_map)

    def _issue_payload(self, issue: SourceIssue, github: GitHubClient) -> dict[str, Any]:
        """Title, body, labels, assignees and milestone for create and full updates."""
        labels = map_labels(issue.labels, self.config.label_map, self.config.provenance_label)
        new_status_label = status_label(issue.status)
        if new_status_label and new_status_label not in labels:
            labels.append(new_status_label)
        for label in labels:
            github.ensure_label(label)

        assignee = self._resolve(issue.assignee)
        attachment_urls = self._attachment_urls(issue, github)
        description = link_attachments(self.extractor.extract(issue.description), attachment_urls)

        payload: dict[str, Any] = {
            "title": build_issue_title(issue),
            "body": build_issue_body(
                issue,
                description=description,
                jira_link=self.jira.browse_url(issue.key),
                assignee=assignee,
                reporter=self._resolve(issue.reporter),
                attachment_urls=attachment_urls,
                custom_fields=self._custom_fields(issue),
            ),
            "labels": labels,
            "assignees": self._assignees(assignee, github),
        }
        milestone = self._milestone(github)
        if milestone is not None:
            payload["milestone"] = milestone
        return payload

    @staticmethod
    def _assignees(assignee: ResolvedUser | None, github: GitHubClient) -> list[str]:
        if assignee is None:
            return []
        logins = []
        for login in assignee.usernames:
            if github.is_assignable(login):
                logins.append(login)
            else:
                logger.warning(f"GitHub user {login} cannot be assigned in {github.repo_path}, skipping")
        return logins

    def _milestone(self, github: GitHubClient) -> int | None:
        milestone_id = self.config.milestone_id
        if milestone_id is None:
            return None
        response = github.get_milestone(milestone_id)
        if not response.ok:
            logger.warning(f"Milestone {milestone_id} not found in {github.repo_path} (HTTP {response.status}), skipping")
            return None
        return milestone_id

    def _add_to_projects(self, created: DestinationIssue, github: GitHubClient) -> None:
        if not self.config.project_ids:
            return
        if not created.node_id:
            logger.warning(f"No node id for GitHub issue #{created.number}, cannot add it to projects")
            return
        for project_id in self.config.project_ids:
            if not github.project_exists(project_id):
                logger.warning(f"Project {project_id} not found or not a ProjectV2, skipping")
                continue
            if github.add_to_project(project_id, created.node_id):
                logger.debug(f"Added GitHub issue #{created.number} to project {project_id}")

    def _attachment_urls(self, issue: SourceIssue, github: GitHubClient) -> dict[str, str]:
        sources = {a.filename: a.url for a in issue.attachments}
        if not sources or not self.config.rehost_attachments:
            return sources
        rehoster = AttachmentRehoster(self.jira, github, release_tag=self.config.attachments_release_tag)
        urls = rehoster.process_images(sources)
        rehosted = sum(1 for record in rehoster.records if record.rehosted)
        logger.debug(f"Re-hosted {rehosted}/{len(sources)} attachments of {issue.key}")
        return urls

    def _custom_fields(self, issue: SourceIssue) -> list[tuple[str, str]]:
        """Rendered custom fields as (display name, value), minus excluded ones."""
        values = {field_id: format_field_value(value) for field_id, value in issue.custom_fields.items()}
        values = {field_id: text for field_id, text in values.items() if text}
        if not values:
            return []

        excluded = set(self.fields.resolve_field_names(self.config.excluded_custom_fields))
        start_date_field = self.fields.resolve_field_name(self.config.start_date_field)
        if start_date_field:
            excluded.add(start_date_field)

        return [
            (self.fields.get_field_name(field_id), text)
            for field_id, text in sorted(values.items())
            if field_id not in excluded
        ]


def build_engine(settings: Settings, field_map: FieldMap) -> SyncEngine:
    """Wire the clients described by the settings into an engine."""
    jira_client = JiraClient(
        settings.jira_base_url,
        settings.jira_email,
        settings.jira_api_token,
        timeout=settings.request_timeout,
        max_redirects=settings.max_redirects,
    )
    github_client = None
    if settings.github_token and settings.github_owner and settings.github_repo:
        github = get_client(settings.github_token, base_url=settings.github_api_url, timeout=settings.request_timeout)
        github_client = GitHubClient(github, settings.github_owner, settings.github_repo)
    else:
        logger.warning("GitHub owner, repository or token missing; webhooks will be answered with 500")
    return SyncEngine(settings.to_sync_config(), github_client, jira_client, field_map)
