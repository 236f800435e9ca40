"""Parse Jira webhook payloads into :mod:`models` objects."""

from __future__ import annotations

import json
import logging
from typing import Any

from .exceptions import MalformedInput
from .models import (
    ChangeItem,
    ParentRef,
    SourceAttachment,
    SourceComment,
    SourceIssue,
    UserRef,
    WebhookEvent,
)

logger: logging.Logger = logging.getLogger(__name__)


def _name_of(value: Any) -> str:  # noqa: ANN401
    if isinstance(value, dict):
        return str(value.get("name") or "")
    return str(value or "")


def parse_user(data: Any) -> UserRef | None:  # noqa: ANN401
    """Keep only the display name and email of a Jira user object."""
    if not isinstance(data, dict):
        return None
    display_name = str(data.get("displayName") or "")
    email = str(data.get("emailAddress") or "")
    if not display_name and not email:
        return None
    return UserRef(display_name=display_name, email=email)


def _object(value: Any, what: str) -> dict[str, Any]:  # noqa: ANN401
    if value is None:
        return {}
    if not isinstance(value, dict):
        msg = f"Invalid JSON payload: {what} must be an object, got {type(value).__name__}"
        raise MalformedInput(msg)
    return value


def _array(value: Any, what: str) -> list[Any]:  # noqa: ANN401
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"Invalid JSON payload: {what} must be an array, got {type(value).__name__}"
        raise MalformedInput(msg)
    return value


def _size(value: Any) -> int:  # noqa: ANN401
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric attachment size {value!r}")
        return 0


def parse_issue(data: dict[str, Any], *, start_date_field: str | None = None) -> SourceIssue:
    """Build a :class:`SourceIssue` from the ``issue`` object of a payload.

    Args:
        data: The ``issue`` object
        start_date_field: Field id holding the start date (resolved by the caller)

    Raises:
        MalformedInput: If ``fields``, ``labels`` or ``attachment`` has the wrong shape
    """
    fields = _object(data.get("fields"), "issue.fields")

    parent = None
    parent_data = fields.get("parent")
    if isinstance(parent_data, dict) and parent_data.get("key"):
        parent_fields = parent_data.get("fields")
        parent = ParentRef(
            key=str(parent_data["key"]),
            summary=str(parent_fields.get("summary") or "") if isinstance(parent_fields, dict) else "",
        )

    attachments = [
        SourceAttachment(
            filename=str(item.get("filename") or ""),
            url=str(item.get("content") or ""),
            mime_type=str(item.get("mimeType") or ""),
            size=_size(item.get("size")),
        )
        for item in _array(fields.get("attachment"), "issue.fields.attachment")
        if isinstance(item, dict) and item.get("filename") and item.get("content")
    ]

    start_date = fields.get(start_date_field) if start_date_field else None

    return SourceIssue(
        key=str(data.get("key") or ""),
        issue_type=_name_of(fields.get("issuetype")),
        summary=str(fields.get("summary") or ""),
        description=fields.get("description"),
        status=_name_of(fields.get("status")),
        priority=_name_of(fields.get("priority")),
        labels=[str(label) for label in _array(fields.get("labels"), "issue.fields.labels")],
        assignee=parse_user(fields.get("assignee")),
        reporter=parse_user(fields.get("reporter")),
        parent=parent,
        attachments=attachments,
        due_date=fields.get("duedate") or None,
        start_date=str(start_date) if start_date else None,
        custom_fields={k: v for k, v in fields.items() if k.startswith("customfield_")},
        self_url=str(data.get("self") or ""),
    )


def parse_comment(data: Any) -> SourceComment | None:  # noqa: ANN401
    if not isinstance(data, dict) or data.get("id") is None:
        return None
    return SourceComment(
        id=str(data["id"]),
        body=data.get("body"),
        author=parse_user(data.get("author")),
        created=str(data.get("created") or ""),
        updated=str(data.get("updated") or ""),
    )


def parse_changelog(data: Any) -> list[ChangeItem]:  # noqa: ANN401
    if not isinstance(data, dict):
        return []
    return [
        ChangeItem(
            field=str(item.get("field") or ""),
            field_id=str(item.get("fieldId") or ""),
            from_string=item.get("fromString"),
            to_string=item.get("toString"),
        )
        for item in data.get("items") or []
        if isinstance(item, dict)
    ]


def load_payload(raw_body: bytes | str) -> dict[str, Any]:
    """Decode the raw body as a JSON object; an empty body counts as ``{}``.

    Raises:
        MalformedInput: If the body is not valid UTF-8 JSON or not an object
    """
    try:
        text = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        data = json.loads(text or "{}")
    except (UnicodeDecodeError, ValueError) as e:
        msg = f"Invalid JSON payload: {e}"
        raise MalformedInput(msg) from e
    if not isinstance(data, dict):
        msg = "Invalid JSON payload: expected an object"
        raise MalformedInput(msg)
    return data


def parse_event(data: dict[str, Any], *, start_date_field: str | None = None) -> WebhookEvent:
    """Build a :class:`WebhookEvent` from a decoded payload."""
    issue_data = data.get("issue")
    issue = None
    if isinstance(issue_data, dict):
        issue = parse_issue(issue_data, start_date_field=start_date_field)
    elif data:
        logger.debug(f"Webhook payload {data.get('webhookEvent')!r} carries no issue object")
    return WebhookEvent(
        event_type=str(data.get("webhookEvent") or ""),
        issue=issue,
        comment=parse_comment(data.get("comment")),
        changelog=parse_changelog(data.get("changelog")),
        issue_event_type=data.get("issue_event_type_name"),
    )
