"""
Pytest configuration and fixtures.

The GitHub side is replaced by :class:`FakeGitHub`, an in-memory repository
that answers like :class:`jira_github_sync.github_client.GitHubClient`. Its
search index lags behind writes, the way the real search API does, until
:meth:`FakeGitHub.reindex` is called.
"""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import Mock

import pytest

from jira_github_sync.config import SyncConfig
from jira_github_sync.fields import FieldMap
from jira_github_sync.github_client import GitHubResponse
from jira_github_sync.jira_client import ApiResponse

FIELD_DEFINITIONS: list[dict[str, Any]] = [
    {"id": "summary", "name": "Summary"},
    {"id": "customfield_10015", "name": "Start date"},
    {"id": "customfield_10016", "name": "Story Points"},
    {"id": "customfield_10020", "name": "Sprint"},
]


class FakeGitHub:
    """In-memory stand-in for GitHubClient."""

    def __init__(self, owner: str = "acme", repo: str = "widgets") -> None:
        self.owner = owner
        self.repo = repo
        self.issues: dict[int, dict[str, Any]] = {}
        self.comments: dict[int, list[dict[str, Any]]] = {}
        self.labels: set[str] = set()
        self.searchable: set[int] = set()
        self.assignable: set[str] = set()
        self.milestones: set[int] = set()
        self.projects: set[str] = set()
        self.project_items: list[tuple[str, str]] = []
        self.fail_create: bool = False
        self.repository = Mock()
        self.repository.get_releases.return_value = []
        self._next_comment_id = 1000

    @property
    def repo_path(self) -> str:
        return f"{self.owner}/{self.repo}"

    def reindex(self) -> None:
        self.searchable = set(self.issues)

    def add_issue(self, title: str, body: str, labels: list[str] | None = None, *, searchable: bool = True) -> int:
        number = len(self.issues) + 1
        self.issues[number] = {
            "number": number,
            "title": title,
            "body": body,
            "labels": [{"name": name} for name in labels or []],
            "assignees": [],
            "state": "open",
            "node_id": f"I_node{number}",
        }
        self.comments[number] = []
        if searchable:
            self.searchable.add(number)
        return number

    def label_names(self, number: int) -> list[str]:
        return [label["name"] for label in self.issues[number]["labels"]]

    # GitHubClient interface

    def search_issues(self, query: str, *, per_page: int = 20) -> GitHubResponse:
        term = query.split('"')[1]
        items = [
            self.issues[n] for n in sorted(self.searchable) if term in self.issues[n]["title"] + self.issues[n]["body"]
        ]
        return GitHubResponse(200, {"total_count": len(items), "items": items[:per_page]})

    def list_issues(self, *, labels: str | None = None, state: str = "all", per_page: int = 100) -> GitHubResponse:
        numbers = sorted(self.issues, reverse=True)
        items = [self.issues[n] for n in numbers if not labels or labels in self.label_names(n)]
        return GitHubResponse(200, items[:per_page])

    def get_issue(self, number: int) -> GitHubResponse:
        if number not in self.issues:
            return GitHubResponse(404, {"message": "Not Found"})
        return GitHubResponse(200, self.issues[number])

    def create_issue(self, payload: dict[str, Any]) -> GitHubResponse:
        if self.fail_create:
            return GitHubResponse(422, {"message": "Validation Failed"})
        number = self.add_issue(payload["title"], payload["body"], payload.get("labels"), searchable=False)
        self.issues[number]["assignees"] = [{"login": login} for login in payload.get("assignees", [])]
        self.issues[number]["milestone"] = payload.get("milestone")
        return GitHubResponse(201, self.issues[number])

    def update_issue(self, number: int, payload: dict[str, Any]) -> GitHubResponse:
        issue = self.issues[number]
        for key, value in payload.items():
            if key == "labels":
                issue["labels"] = [{"name": name} for name in value]
            elif key == "assignees":
                issue["assignees"] = [{"login": login} for login in value]
            else:
                issue[key] = value
        return GitHubResponse(200, issue)

    def list_comments(self, number: int, *, page: int = 1, per_page: int = 100) -> GitHubResponse:
        start = (page - 1) * per_page
        return GitHubResponse(200, list(self.comments.get(number, []))[start : start + per_page])

    def create_comment(self, number: int, body: str) -> GitHubResponse:
        self._next_comment_id += 1
        comment = {"id": self._next_comment_id, "body": body}
        self.comments.setdefault(number, []).append(comment)
        return GitHubResponse(201, comment)

    def update_comment(self, comment_id: int, body: str) -> GitHubResponse:
        for comments in self.comments.values():
            for comment in comments:
                if comment["id"] == comment_id:
                    comment["body"] = body
                    return GitHubResponse(200, comment)
        return GitHubResponse(404, {"message": "Not Found"})

    def ensure_label(self, name: str, color: str = "ededed", description: str = "") -> bool:
        self.labels.add(name)
        return True

    def is_assignable(self, login: str) -> bool:
        return login in self.assignable

    def get_milestone(self, number: int) -> GitHubResponse:
        if number in self.milestones:
            return GitHubResponse(200, {"number": number})
        return GitHubResponse(404, {"message": "Not Found"})

    def project_exists(self, project_id: str) -> bool:
        return project_id in self.projects

    def add_to_project(self, project_id: str, content_id: str) -> bool:
        self.project_items.append((project_id, content_id))
        return True


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(
        github_owner="acme",
        github_repo="widgets",
        label_map={"bug": "type: bug", "team-*": "team: *"},
        user_map={"jane@example.com": "janedoe", "John Smith": "jsmith"},
        jira_base_url="https://acme.atlassian.net",
        rehost_attachments=False,
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    fake = FakeGitHub()
    fake.assignable = {"janedoe", "jsmith"}
    return fake


@pytest.fixture
def jira_client() -> Mock:
    client = Mock()
    client.base_url = "https://acme.atlassian.net"
    client.browse_url.side_effect = lambda key: f"https://acme.atlassian.net/browse/{key}"
    client.get_fields.return_value = ApiResponse(200, FIELD_DEFINITIONS)
    return client


@pytest.fixture
def field_map() -> FieldMap:
    return FieldMap()


def make_issue(
    key: str = "PROJ-1",
    *,
    summary: str = "Add login page",
    issue_type: str = "Story",
    status: str = "To Do",
    labels: list[str] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """Build the ``issue`` object of a Jira webhook payload."""
    base: dict[str, Any] = {
        "summary": summary,
        "issuetype": {"name": issue_type},
        "status": {"name": status},
        "priority": {"name": "High"},
        "labels": ["create-github"] if labels is None else labels,
        "description": {
            "type": "doc",
            "version": 1,
            "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Users need to log in."}]}],
        },
        "assignee": {"accountId": "5b10ac8d82e05b22cc7d4ef5", "displayName": "Jane Doe", "emailAddress": "jane@example.com"},
        "reporter": {"accountId": "5b10a2844c20165700ede21g", "displayName": "John Smith"},
    }
    base.update(fields)
    return {"key": key, "self": f"https://acme.atlassian.net/rest/api/3/issue/{key}", "fields": base}


def make_payload(event: str = "jira:issue_created", issue: dict[str, Any] | None = None, **extra: Any) -> bytes:
    """Serialize a webhook payload as Jira sends it."""
    data: dict[str, Any] = {"webhookEvent": event, "issue": issue if issue is not None else make_issue()}
    data.update(extra)
    return json.dumps(data).encode("utf-8")
