"""Application configuration"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic_settings import BaseSettings, SettingsConfigDict

from .identity import PROVENANCE_LABEL, MappingValue


def _split_csv(value: str | None) -> frozenset[str]:
    return frozenset(part.strip() for part in (value or "").split(",") if part.strip())


@dataclass(frozen=True)
class SyncConfig:
    """Read-only configuration consumed by the sync engine."""

    github_owner: str | None = None
    github_repo: str | None = None
    trigger_labels: frozenset[str] = frozenset({"create-github"})
    allowed_types: frozenset[str] = frozenset({"Story", "Task"})
    label_map: dict[str, MappingValue] = field(default_factory=dict)
    user_map: dict[str, MappingValue] = field(default_factory=dict)
    excluded_custom_fields: frozenset[str] = frozenset()
    start_date_field: str = "customfield_10015"
    closed_statuses: frozenset[str] = frozenset({"done", "resolved", "closed"})
    milestone_id: int | None = None
    project_ids: tuple[str, ...] = ()
    provenance_label: str = PROVENANCE_LABEL
    attachments_release_tag: str = "jira-attachments"
    rehost_attachments: bool = True
    suppress_parent_only_changes: bool = True
    webhook_secret: str | None = None
    jira_base_url: str = ""

    def is_closed_status(self, status: str | None) -> bool:
        return bool(status) and status.strip().lower() in self.closed_statuses


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # GitHub
    github_owner: str | None = None
    github_repo: str | None = None
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    github_milestone_id: int | None = None
    # JSON list of ProjectV2 node ids, e.g. '["PVT_kwDOABC"]'
    github_project_ids: list[str] = []

    # Jira
    jira_base_url: str = ""
    jira_email: str | None = None
    jira_api_token: str | None = None
    jira_webhook_secret: str | None = None

    # Sync behaviour. Comma-separated lists, JSON objects for the maps:
    #
    # Example: LABEL_MAP='{"bug": "type: bug", "team-*": "team: *"}'
    trigger_labels: str = "create-github"
    jira_types: str = "Story,Task"
    label_map: dict[str, str | list[str]] = {}
    user_map: dict[str, str | list[str]] = {}
    excluded_custom_fields: str = ""
    # Field id or field name, resolved through the Jira field metadata
    start_date_field: str = "customfield_10015"
    closed_statuses: str = "Done,Resolved,Closed"
    provenance_label: str = PROVENANCE_LABEL
    attachments_release_tag: str = "jira-attachments"
    rehost_attachments: bool = True
    suppress_parent_only_changes: bool = True

    # Outbound HTTP
    request_timeout: float = 15.0
    max_redirects: int = 5

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"

    def to_sync_config(self) -> SyncConfig:
        return SyncConfig(
            github_owner=self.github_owner,
            github_repo=self.github_repo,
            trigger_labels=_split_csv(self.trigger_labels),
            allowed_types=_split_csv(self.jira_types),
            label_map=dict(self.label_map),
            user_map=dict(self.user_map),
            excluded_custom_fields=_split_csv(self.excluded_custom_fields),
            start_date_field=self.start_date_field.strip(),
            closed_statuses=frozenset(s.lower() for s in _split_csv(self.closed_statuses)),
            milestone_id=self.github_milestone_id,
            project_ids=tuple(self.github_project_ids),
            provenance_label=self.provenance_label,
            attachments_release_tag=self.attachments_release_tag,
            rehost_attachments=self.rehost_attachments,
            suppress_parent_only_changes=self.suppress_parent_only_changes,
            webhook_secret=self.jira_webhook_secret,
            jira_base_url=self.jira_base_url.rstrip("/"),
        )
