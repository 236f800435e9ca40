from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import quote

import requests
from github import Auth, Github, GithubException

if TYPE_CHECKING:
    from github.Repository import Repository

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_BASE_URL: Final[str] = "https://api.github.com"
DEFAULT_LABEL_COLOR: Final[str] = "ededed"

_PROJECT_NODE_QUERY: Final[str] = """
query($id: ID!) {
  node(id: $id) { __typename ... on ProjectV2 { id title } }
}
"""
_ADD_TO_PROJECT_MUTATION: Final[str] = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) { item { id } }
}
"""


@dataclass(frozen=True)
class GitHubResponse:
    """HTTP status and decoded JSON body of a GitHub call.

    A status of 0 means the request never got an answer (timeout, connection
    error).
    """

    status: int
    data: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def message(self) -> str:
        if isinstance(self.data, dict):
            return str(self.data.get("message", ""))
        return str(self.data or "")


def get_client(token: str, *, base_url: str = DEFAULT_BASE_URL, timeout: float = 15) -> Github:
    """Get a GitHub client using the token."""
    return Github(auth=Auth.Token(token), base_url=base_url, timeout=timeout)


def _is_already_exists_error(response: GitHubResponse) -> bool:
    """Check if a response is a 422 'already_exists' validation error."""
    if response.status != 422 or not isinstance(response.data, dict):
        return False
    errors = response.data.get("errors")
    if not isinstance(errors, list):
        return False
    return any(isinstance(e, dict) and e.get("code") == "already_exists" for e in errors)


class GitHubClient:
    """Issue, comment and label operations on one GitHub repository.

    Calls go through PyGithub's requester so authentication, base URL and
    timeout are shared with the rest of PyGithub, but the status code of every
    answer is handed back instead of being raised. Release handling (used for
    attachments) goes through the regular PyGithub objects via
    :attr:`repository`.
    """

    def __init__(self, github: Github, owner: str, repo: str) -> None:
        self.github: Github = github
        self.owner: str = owner
        self.repo: str = repo
        self._repository: Repository | None = None

    @property
    def repo_path(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def repository(self) -> Repository:
        """PyGithub repository object (cached). Raises GithubException on failure."""
        if self._repository is None:
            self._repository = self.github.get_repo(self.repo_path)
        return self._repository

    def _request(
        self,
        verb: str,
        path: str,
        *,
        parameters: dict[str, Any] | None = None,
        payload: Any = None,  # noqa: ANN401
    ) -> GitHubResponse:
        try:
            status, _, raw = self.github.requester.requestJson(verb, path, parameters=parameters, input=payload)
        except (requests.RequestException, GithubException) as e:
            logger.warning(f"GitHub request {verb} {path} failed: {e}")
            return GitHubResponse(status=getattr(e, "status", 0) or 0, data={"message": str(e)})

        data: Any = None
        if raw:
            try:
                data = json.loads(raw)
            except ValueError:
                data = raw
        return GitHubResponse(status=status, data=data)

    def _repo_path(self, suffix: str) -> str:
        return f"/repos/{self.owner}/{self.repo}{suffix}"

    # Issues

    def search_issues(self, query: str, *, per_page: int = 20) -> GitHubResponse:
        return self._request("GET", "/search/issues", parameters={"q": query, "per_page": per_page})

    def list_issues(self, *, labels: str | None = None, state: str = "all", per_page: int = 100) -> GitHubResponse:
        parameters: dict[str, Any] = {"state": state, "per_page": per_page, "sort": "created", "direction": "desc"}
        if labels:
            parameters["labels"] = labels
        return self._request("GET", self._repo_path("/issues"), parameters=parameters)

    def get_issue(self, number: int) -> GitHubResponse:
        return self._request("GET", self._repo_path(f"/issues/{number}"))

    def create_issue(self, payload: dict[str, Any]) -> GitHubResponse:
        return self._request("POST", self._repo_path("/issues"), payload=payload)

    def update_issue(self, number: int, payload: dict[str, Any]) -> GitHubResponse:
        return self._request("PATCH", self._repo_path(f"/issues/{number}"), payload=payload)

    # Comments

    def list_comments(self, number: int, *, page: int = 1, per_page: int = 100) -> GitHubResponse:
        parameters = {"page": page, "per_page": per_page}
        return self._request("GET", self._repo_path(f"/issues/{number}/comments"), parameters=parameters)

    def create_comment(self, number: int, body: str) -> GitHubResponse:
        return self._request("POST", self._repo_path(f"/issues/{number}/comments"), payload={"body": body})

    def update_comment(self, comment_id: int, body: str) -> GitHubResponse:
        return self._request("PATCH", self._repo_path(f"/issues/comments/{comment_id}"), payload={"body": body})

    # Labels, assignees, milestones

    def get_label(self, name: str) -> GitHubResponse:
        return self._request("GET", self._repo_path(f"/labels/{quote(name, safe='')}"))

    def create_label(self, name: str, color: str = DEFAULT_LABEL_COLOR, description: str = "") -> GitHubResponse:
        payload = {"name": name, "color": color, "description": description}
        return self._request("POST", self._repo_path("/labels"), payload=payload)

    def ensure_label(self, name: str, color: str = DEFAULT_LABEL_COLOR, description: str = "") -> bool:
        """Make sure a label exists; returns False (after logging) if it could not be created."""
        if self.get_label(name).ok:
            return True
        response = self.create_label(name, color=color, description=description)
        if response.ok or _is_already_exists_error(response):
            logger.debug(f"Created label {name!r}")
            return True
        logger.warning(f"Could not create label {name!r}: HTTP {response.status} {response.message}")
        return False

    def is_assignable(self, login: str) -> bool:
        """Check whether a user can be assigned to issues (GitHub answers 204 if so)."""
        return self._request("GET", self._repo_path(f"/assignees/{quote(login, safe='')}")).status == 204

    def get_milestone(self, number: int) -> GitHubResponse:
        return self._request("GET", self._repo_path(f"/milestones/{number}"))

    # Projects (v2, GraphQL)

    def graphql(self, query: str, variables: dict[str, Any]) -> GitHubResponse:
        response = self._request("POST", "/graphql", payload={"query": query, "variables": variables})
        if response.ok and isinstance(response.data, dict) and response.data.get("errors"):
            return GitHubResponse(status=422, data={"message": str(response.data["errors"])})
        return response

    def project_exists(self, project_id: str) -> bool:
        response = self.graphql(_PROJECT_NODE_QUERY, {"id": project_id})
        if not response.ok:
            return False
        node = (response.data.get("data") or {}).get("node") or {}
        return node.get("__typename") == "ProjectV2"

    def add_to_project(self, project_id: str, content_id: str) -> bool:
        response = self.graphql(_ADD_TO_PROJECT_MUTATION, {"projectId": project_id, "contentId": content_id})
        if not response.ok:
            logger.warning(f"Could not add issue to project {project_id}: {response.message}")
        return response.ok
