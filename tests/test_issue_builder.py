"""Tests for issue body building functions."""

from __future__ import annotations

import pytest

from jira_github_sync.identity import ResolvedUser
from jira_github_sync.issue_builder import (
    build_comment_body,
    build_issue_body,
    build_issue_title,
    comment_marker,
    find_comment_marker,
    format_field_value,
    format_timestamp,
    link_attachments,
    update_status_block,
)
from jira_github_sync.models import ParentRef, SourceComment, SourceIssue

JANE = ResolvedUser(usernames=("janedoe",), display_name="Jane Doe", email="jane@example.com", is_mapped=True)
BOB = ResolvedUser(usernames=(), display_name="Bob", email="", is_mapped=False)


def _issue(**kwargs) -> SourceIssue:
    defaults = {"key": "PROJ-1", "issue_type": "Story", "summary": "Add login page", "status": "To Do"}
    defaults.update(kwargs)
    return SourceIssue(**defaults)


@pytest.mark.unit
class TestFormatTimestamp:
    def test_jira_format(self) -> None:
        assert format_timestamp("2024-01-15T10:30:45.123+0000") == "2024-01-15 10:30:45Z"

    def test_non_utc_timezone(self) -> None:
        assert format_timestamp("2024-01-15T10:30:45+05:30") == "2024-01-15 10:30:45+05:30"

    def test_empty_string_returns_as_is(self) -> None:
        assert format_timestamp("") == ""

    def test_invalid_format_returns_original(self) -> None:
        assert format_timestamp("invalid-timestamp") == "invalid-timestamp"


@pytest.mark.unit
class TestBuildIssueTitle:
    def test_key_and_summary(self) -> None:
        assert build_issue_title(_issue()) == "PROJ-1: Add login page"

    def test_missing_summary(self) -> None:
        assert build_issue_title(_issue(summary="")) == "PROJ-1: New Jira Item"


@pytest.mark.unit
class TestBuildIssueBody:
    def test_full_body(self) -> None:
        issue = _issue(
            priority="High",
            parent=ParentRef(key="PROJ-0", summary="Authentication"),
            due_date="2024-03-01",
        )
        body = build_issue_body(
            issue,
            description="Users need to log in.",
            jira_link="https://acme.atlassian.net/browse/PROJ-1",
            assignee=JANE,
            reporter=BOB,
            attachment_urls={"shot.png": "https://gh/shot.png", "design.pdf": "https://gh/design.pdf"},
            custom_fields=[("Story Points", "5")],
        )

        assert body.split("\n") == [
            "Jira: PROJ-1",
            "Jira Link: https://acme.atlassian.net/browse/PROJ-1",
            "Type: Story",
            "Parent: PROJ-0 - Authentication",
            "Priority: High",
            "Assignee: Jane Doe (@janedoe)",
            "Reporter: Bob",
            "Story Points: 5",
            "",
            "Status: To Do",
            "Due Date: 2024-03-01",
            "Start Date: Not set",
            "",
            "---",
            "",
            "Description:",
            "Users need to log in.",
            "",
            "Attachments:",
            "- ![shot.png](https://gh/shot.png)",
            "- [design.pdf](https://gh/design.pdf)",
        ]

    def test_defaults(self) -> None:
        body = build_issue_body(_issue(), description="")
        assert "Priority: Medium" in body
        assert "Assignee: Unassigned" in body
        assert "No description" in body
        assert "Reporter:" not in body
        assert "Attachments:" not in body

    def test_account_ids_never_rendered(self) -> None:
        body = build_issue_body(_issue(), description="", assignee=BOB)
        assert "accountId" not in body


@pytest.mark.unit
class TestUpdateStatusBlock:
    BODY = "Jira: PROJ-1\nPriority: High\n\nStatus: To Do\nDue Date: Not set\nStart Date: Not set\n\n---\n\nDescription:\nStatus: this line belongs to the description"

    def test_replaces_in_place(self) -> None:
        result = update_status_block(self.BODY, "Done", "2024-01-01", "2024-02-01")
        assert "Status: Done\nDue Date: 2024-02-01\nStart Date: 2024-01-01" in result
        assert "Status: To Do" not in result

    def test_description_is_untouched(self) -> None:
        result = update_status_block(self.BODY, "Done", None, None)
        assert result.endswith("Description:\nStatus: this line belongs to the description")
        assert result.startswith("Jira: PROJ-1\nPriority: High\n\n")

    def test_appends_block_when_missing(self) -> None:
        result = update_status_block("Jira: PROJ-1\n\n---\n\nDescription:\nText", "In Progress", None, None)
        assert result == (
            "Jira: PROJ-1\n\n\nStatus: In Progress\nDue Date: Not set\nStart Date: Not set\n\n---\n\nDescription:\nText"
        )

    def test_empty_body(self) -> None:
        result = update_status_block(None, "Done", None, None)
        assert "Status: Done" in result


@pytest.mark.unit
class TestLinkAttachments:
    def test_replaces_filename_references(self) -> None:
        text = "See ![Shot](shot.png) and [log](log.txt)"
        result = link_attachments(text, {"shot.png": "https://gh/shot.png"})
        assert result == "See ![Shot](https://gh/shot.png) and [log](log.txt)"


@pytest.mark.unit
class TestComments:
    def test_marker_round_trip(self) -> None:
        assert find_comment_marker(f"text\n\n{comment_marker('10042')}") == "10042"

    def test_no_marker(self) -> None:
        assert find_comment_marker("plain comment") is None
        assert find_comment_marker(None) is None

    def test_comment_body(self) -> None:
        comment = SourceComment(id="10042", created="2024-01-15T10:30:45.000+0000", updated="2024-01-15T10:30:45.000+0000")
        body = build_comment_body(comment, "Looks good", author=JANE)
        assert body.startswith("**Comment by** Jane Doe (@janedoe) **on** 2024-01-15 10:30:45Z\n\n---\n\nLooks good")
        assert body.endswith("<!-- jira-comment-id: 10042 -->")
        assert "edited" not in body

    def test_edited_comment(self) -> None:
        comment = SourceComment(id="1", created="2024-01-15T10:30:45+00:00", updated="2024-01-16T08:00:00+00:00")
        body = build_comment_body(comment, "Updated text")
        assert "(edited 2024-01-16 08:00:00Z)" in body
        assert "Unknown user" in body


@pytest.mark.unit
class TestFormatFieldValue:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, ""),
            (5, "5"),
            (2.5, "2.5"),
            (True, "Yes"),
            ("text", "text"),
            ({"value": "Option A", "id": "10100"}, "Option A"),
            ({"displayName": "Jane Doe", "accountId": "5b10ac8d82e05b22cc7d4ef5"}, "Jane Doe"),
            ([{"name": "Sprint 1"}, {"name": "Sprint 2"}], "Sprint 1, Sprint 2"),
            ({"accountId": "5b10ac8d82e05b22cc7d4ef5"}, ""),
        ],
    )
    def test_values(self, value: object, expected: str) -> None:
        assert format_field_value(value) == expected

    def test_rich_text_value(self) -> None:
        value = {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Note"}]}]}
        assert format_field_value(value) == "Note"
