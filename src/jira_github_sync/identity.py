"""
Label and user translation between Jira and GitHub.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .models import UserRef

PROVENANCE_LABEL: Final[str] = "from-jira"
STATUS_LABEL_PREFIX: Final[str] = "status:"

# Values in LABEL_MAP / USER_MAP may be a single name or a list of names
MappingValue = str | list[str]


def _as_list(value: MappingValue | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [v for v in value if v]


class LabelMapper:
    """Handles Jira -> GitHub label translation.

    Keys are either exact Jira label names or glob patterns using ``*``
    (e.g. ``"team-*": "team: *"``). Exact keys win over patterns.
    """

    def __init__(self, label_map: Mapping[str, MappingValue] | None) -> None:
        self.exact: dict[str, list[str]] = {}
        self.patterns: list[tuple[re.Pattern[str], list[str]]] = []

        for source, target in (label_map or {}).items():
            targets = _as_list(target)
            if "*" in source:
                regex = "^" + "(.*)".join(re.escape(part) for part in source.split("*")) + "$"
                self.patterns.append((re.compile(regex), targets))
            else:
                self.exact[source] = targets

    def translate(self, label_name: str) -> list[str]:
        """Translate a label name; unmapped labels pass through unchanged."""
        if label_name in self.exact:
            return self.exact[label_name]
        for regex, targets in self.patterns:
            match = regex.match(label_name)
            if match:
                captured = match.group(1) if match.groups() else ""
                return [target.replace("*", captured) for target in targets]
        return [label_name]


def map_labels(
    source_labels: Iterable[str],
    label_map: Mapping[str, MappingValue] | None,
    provenance_label: str = PROVENANCE_LABEL,
) -> list[str]:
    """Map Jira labels to GitHub labels.

    The result is deduplicated, keeps insertion order, and always contains the
    provenance label exactly once.
    """
    mapper = LabelMapper(label_map)
    out: list[str] = []
    seen: set[str] = set()
    for label in source_labels or []:
        for mapped in mapper.translate(label):
            if mapped not in seen:
                seen.add(mapped)
                out.append(mapped)
    if provenance_label not in seen:
        out.append(provenance_label)
    return out


def status_label(status_name: str | None) -> str | None:
    """Build the ``status: <name>`` label for a Jira status."""
    if not status_name:
        return None
    return f"{STATUS_LABEL_PREFIX} {status_name}"


def is_status_label(label: str) -> bool:
    return label.lower().startswith(STATUS_LABEL_PREFIX)


@dataclass(frozen=True)
class ResolvedUser:
    """A Jira user translated to GitHub logins (possibly none)."""

    usernames: tuple[str, ...]
    display_name: str
    email: str
    is_mapped: bool

    def format(self) -> str:
        """Human-readable form for issue bodies: ``Name (@login)`` or ``Name``."""
        name = self.display_name or self.email or "Unknown user"
        if self.usernames:
            logins = ", ".join(f"@{u}" for u in self.usernames)
            return f"{name} ({logins})"
        return name


def _lookup(user_map: Mapping[str, MappingValue], key: str) -> list[str]:
    if not key:
        return []
    if key in user_map:
        return _as_list(user_map[key])
    folded = key.casefold()
    for candidate, value in user_map.items():
        if candidate.casefold() == folded:
            return _as_list(value)
    return []


def resolve_user(identity: UserRef | None, user_map: Mapping[str, MappingValue] | None) -> ResolvedUser | None:
    """Map a Jira user to GitHub usernames.

    Lookup uses the email address first, then the display name. A missing
    mapping is not an error: the result is simply marked as unmapped so the
    caller can still show the Jira identity as plain text.
    """
    if identity is None:
        return None
    user_map = user_map or {}
    usernames = _lookup(user_map, identity.email) or _lookup(user_map, identity.display_name)
    return ResolvedUser(
        usernames=tuple(usernames),
        display_name=identity.display_name,
        email=identity.email,
        is_mapped=bool(usernames),
    )


def resolve_mention(display_name: str, user_map: Mapping[str, MappingValue] | None) -> str | None:
    """Return the GitHub login for a mentioned Jira display name, if mapped."""
    usernames = _lookup(user_map or {}, display_name.strip())
    return usernames[0] if usernames else None
