"""Tests for webhook payload parsing."""

from __future__ import annotations

import json
from typing import Any

import pytest
from conftest import make_issue, make_payload

from jira_github_sync.exceptions import MalformedInput
from jira_github_sync.payload import load_payload, parse_event, parse_issue, parse_user


@pytest.mark.unit
class TestLoadPayload:
    def test_empty_body_is_empty_object(self) -> None:
        assert load_payload(b"") == {}

    def test_invalid_json(self) -> None:
        with pytest.raises(MalformedInput):
            load_payload(b"{not json")

    def test_non_object(self) -> None:
        with pytest.raises(MalformedInput, match="expected an object"):
            load_payload(b"[1, 2]")

    def test_invalid_utf8(self) -> None:
        with pytest.raises(MalformedInput):
            load_payload(b"\xff\xfe")


@pytest.mark.unit
class TestParseUser:
    def test_account_id_is_dropped(self) -> None:
        user = parse_user({"accountId": "5b10ac8d82e05b22cc7d4ef5", "displayName": "Jane", "emailAddress": "j@x.com"})
        assert user is not None
        assert user.display_name == "Jane"
        assert user.email == "j@x.com"
        assert "5b10ac8d82e05b22cc7d4ef5" not in repr(user)

    def test_account_id_only_is_no_user(self) -> None:
        assert parse_user({"accountId": "5b10ac8d82e05b22cc7d4ef5"}) is None
        assert parse_user(None) is None


@pytest.mark.unit
class TestParseIssue:
    def test_fields(self) -> None:
        data = make_issue(
            parent={"key": "PROJ-0", "fields": {"summary": "Epic"}},
            duedate="2024-03-01",
            customfield_10015="2024-02-01",
            customfield_10016=5,
            attachment=[
                {"filename": "shot.png", "content": "https://acme.atlassian.net/a/1", "mimeType": "image/png", "size": 10},
                {"filename": "broken.png"},
            ],
        )
        issue = parse_issue(data, start_date_field="customfield_10015")

        assert issue.key == "PROJ-1"
        assert issue.issue_type == "Story"
        assert issue.status == "To Do"
        assert issue.priority == "High"
        assert issue.labels == ["create-github"]
        assert issue.assignee is not None
        assert issue.assignee.email == "jane@example.com"
        assert issue.parent is not None
        assert issue.parent.key == "PROJ-0"
        assert issue.parent.summary == "Epic"
        assert issue.due_date == "2024-03-01"
        assert issue.start_date == "2024-02-01"
        assert [a.filename for a in issue.attachments] == ["shot.png"]
        assert issue.custom_fields == {"customfield_10015": "2024-02-01", "customfield_10016": 5}

    def test_start_date_from_other_field(self) -> None:
        issue = parse_issue(make_issue(customfield_10099="2024-05-05"), start_date_field="customfield_10099")
        assert issue.start_date == "2024-05-05"

    def test_no_start_date_field(self) -> None:
        issue = parse_issue(make_issue(customfield_10015="2024-02-01"), start_date_field=None)
        assert issue.start_date is None

    def test_sparse_issue(self) -> None:
        issue = parse_issue({"key": "PROJ-9"})
        assert issue.summary == ""
        assert issue.assignee is None
        assert issue.attachments == []

    @pytest.mark.parametrize(
        "data",
        [
            {"key": "PROJ-1", "fields": "oops"},
            {"key": "PROJ-1", "fields": ["summary"]},
            {"key": "PROJ-1", "fields": {"labels": "create-github"}},
            {"key": "PROJ-1", "fields": {"attachment": {"filename": "a.png"}}},
        ],
    )
    def test_wrong_shapes_are_malformed(self, data: dict[str, Any]) -> None:
        with pytest.raises(MalformedInput):
            parse_issue(data)

    def test_non_numeric_attachment_size_is_zero(self) -> None:
        attachment = {"filename": "a.png", "content": "https://acme.atlassian.net/a", "size": "big"}
        issue = parse_issue(make_issue(attachment=[attachment]))
        assert issue.attachments[0].size == 0

    def test_parent_without_field_object(self) -> None:
        issue = parse_issue(make_issue(parent={"key": "PROJ-0", "fields": "oops"}))
        assert issue.parent is not None
        assert issue.parent.key == "PROJ-0"
        assert issue.parent.summary == ""


@pytest.mark.unit
class TestParseEvent:
    def test_issue_event(self) -> None:
        event = parse_event(json.loads(make_payload("jira:issue_created")))
        assert event.is_creation
        assert not event.is_comment_event
        assert event.issue is not None

    def test_update_with_changelog(self) -> None:
        data = json.loads(
            make_payload(
                "jira:issue_updated",
                changelog={"items": [{"field": "Parent", "fieldId": "parent", "fromString": None, "toString": "PROJ-0"}]},
                issue_event_type_name="issue_generic",
            )
        )
        event = parse_event(data)
        assert event.is_update
        assert event.changed_fields == ["parent"]
        assert event.changelog[0].to_string == "PROJ-0"
        assert event.issue_event_type == "issue_generic"

    def test_comment_event(self) -> None:
        data = json.loads(
            make_payload(
                "comment_created",
                comment={
                    "id": "10042",
                    "body": "Looks good",
                    "author": {"accountId": "abc", "displayName": "Jane Doe"},
                    "created": "2024-01-15T10:30:45.000+0000",
                    "updated": "2024-01-15T10:30:45.000+0000",
                },
            )
        )
        event = parse_event(data)
        assert event.is_comment_event
        assert event.comment is not None
        assert event.comment.id == "10042"
        assert event.comment.author is not None
        assert event.comment.author.display_name == "Jane Doe"

    def test_empty_payload(self) -> None:
        event = parse_event({})
        assert event.event_type == ""
        assert event.issue is None
        assert event.changelog == []
