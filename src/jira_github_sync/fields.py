"""Resolve Jira field names to field ids (and back) with a process-wide cache."""

from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .jira_client import JiraClient

logger: logging.Logger = logging.getLogger(__name__)

SYSTEM_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "summary",
        "description",
        "status",
        "priority",
        "labels",
        "assignee",
        "reporter",
        "issuetype",
        "parent",
        "attachment",
        "duedate",
        "created",
        "updated",
        "resolution",
        "resolutiondate",
        "components",
        "fixversions",
        "versions",
        "environment",
        "project",
        "comment",
    }
)
_CUSTOM_FIELD_ID_RE = re.compile(r"^customfield_\d+$")


def normalize_field_name(name: str) -> str:
    return name.strip().lower()


def looks_like_field_id(name: str) -> bool:
    """True for built-in field names and ``customfield_NNNNN`` ids."""
    normalized = normalize_field_name(name)
    return normalized in SYSTEM_FIELDS or bool(_CUSTOM_FIELD_ID_RE.match(normalized))


class FieldMap:
    """Name <-> id map of Jira fields, shared for the lifetime of the process.

    The map is filled once from the field metadata endpoint and never
    invalidated; a cold start is the only way to refresh it. Two threads
    populating it at the same time is harmless since both write the same
    content.
    """

    def __init__(self) -> None:
        self._by_name: dict[str, str] = {}
        self._by_id: dict[str, str] = {}
        self._loaded: bool = False
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def populate(self, entries: Iterable[dict[str, Any]]) -> None:
        by_name: dict[str, str] = {}
        by_id: dict[str, str] = {}
        for entry in entries:
            field_id = entry.get("id") or entry.get("key")
            name = entry.get("name")
            if not field_id or not name:
                continue
            by_id[str(field_id)] = str(name)
            # First definition wins when two custom fields share a name
            by_name.setdefault(normalize_field_name(str(name)), str(field_id))
        with self._lock:
            self._by_name.update(by_name)
            self._by_id.update(by_id)
            self._loaded = True

    def id_for(self, name: str) -> str | None:
        return self._by_name.get(normalize_field_name(name))

    def name_for(self, field_id: str) -> str | None:
        return self._by_id.get(field_id)


class FieldResolver:
    """Resolves human-readable field names using a shared :class:`FieldMap`."""

    def __init__(self, jira_client: JiraClient | None, field_map: FieldMap) -> None:
        self._jira_client = jira_client
        self._field_map = field_map

    def _ensure_loaded(self) -> bool:
        if self._field_map.loaded:
            return True
        if self._jira_client is None or not self._jira_client.base_url:
            logger.warning("Jira base URL not configured; cannot resolve field names")
            return False

        response = self._jira_client.get_fields()
        if not response.ok or not isinstance(response.data, list):
            logger.warning(f"Jira field metadata unavailable (HTTP {response.status}); field names not resolved")
            return False

        self._field_map.populate(response.data)
        logger.info(f"Loaded {len(response.data)} Jira field definitions")
        return True

    def resolve_field_names(self, names: Iterable[str]) -> list[str]:
        """Resolve field names to ids.

        Built-in names and anything already shaped like a field id pass through.
        Unknown names are dropped with a warning so a renamed or deleted custom
        field never blocks the rest of the sync.
        """
        resolved: list[str] = []
        for name in names:
            if not name or not name.strip():
                continue
            if looks_like_field_id(name):
                resolved.append(name.strip())
                continue
            field_id = self._field_map.id_for(name) if self._ensure_loaded() else None
            if field_id is None:
                logger.warning(f"Unknown Jira field {name!r}, ignoring")
                continue
            resolved.append(field_id)
        return resolved

    def resolve_field_name(self, name: str) -> str | None:
        resolved = self.resolve_field_names([name])
        return resolved[0] if resolved else None

    def get_field_name(self, field_id: str) -> str:
        """Human-readable name of a field id, or the id itself if unknown."""
        if normalize_field_name(field_id) in SYSTEM_FIELDS:
            return field_id
        name = self._field_map.name_for(field_id)
        if name is None and self._ensure_loaded():
            name = self._field_map.name_for(field_id)
        return name or field_id
