"""Convert Jira rich text (ADF or legacy wiki markup) to GitHub markdown."""

from __future__ import annotations

import enum
import logging
import re
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

MEDIA_NODE_TYPES: Final[frozenset[str]] = frozenset(
    {"media", "mediaSingle", "mediaGroup", "mediaInline", "image", "embedCard"}
)
CARD_NODE_TYPES: Final[frozenset[str]] = frozenset({"inlineCard", "blockCard"})

# !image.png! or !image.png|alt=Screenshot,width=300!
_LEGACY_IMAGE_RE = re.compile(r"!([^!\s|]+\.[A-Za-z0-9]+)(?:\|([^!\n]*))?!")
_ALT_PARAM_RE = re.compile(r"(?:^|,)\s*alt\s*=\s*(\"[^\"]*\"|'[^']*'|[^,]*)")
# [~accountid:5b10ac8d82e05b22cc7d4ef5] (cloud) or [~jsmith] (server)
_LEGACY_MENTION_RE = re.compile(r"\[~(accountid:)?([^\]\n]*)\]", re.IGNORECASE)


class NodeKind(enum.Enum):
    TEXT = "text"
    PARAGRAPH = "paragraph"
    MENTION = "mention"
    HARD_BREAK = "hardBreak"
    EMOJI = "emoji"
    MEDIA = "media"
    CARD = "card"
    CONTAINER = "container"
    UNKNOWN = "unknown"


def node_kind(node: dict[str, Any]) -> NodeKind:
    """Classify an ADF node into the closed set of kinds the extractor handles."""
    node_type = node.get("type")
    if node_type == "text" or (node_type is None and isinstance(node.get("text"), str)):
        return NodeKind.TEXT
    if node_type == "paragraph":
        return NodeKind.PARAGRAPH
    if node_type == "mention":
        return NodeKind.MENTION
    if node_type == "hardBreak":
        return NodeKind.HARD_BREAK
    if node_type == "emoji":
        return NodeKind.EMOJI
    if node_type in MEDIA_NODE_TYPES:
        return NodeKind.MEDIA
    if node_type in CARD_NODE_TYPES:
        return NodeKind.CARD
    if isinstance(node.get("content"), list):
        return NodeKind.CONTAINER
    return NodeKind.UNKNOWN


def rewrite_legacy_images(text: str) -> str:
    """Rewrite wiki image markup ``!file.png|alt=x!`` to ``![x](file.png)``."""

    def _replace(match: re.Match[str]) -> str:
        filename = match.group(1)
        alt = filename
        params = match.group(2)
        if params:
            alt_match = _ALT_PARAM_RE.search(params)
            if alt_match:
                alt = alt_match.group(1).strip().strip("\"'") or filename
        return f"![{alt}]({filename})"

    return _LEGACY_IMAGE_RE.sub(_replace, text)


def rewrite_legacy_mentions(text: str, resolve_mention: Callable[[str], str | None] | None = None) -> str:
    """Rewrite wiki mentions ``[~name]`` and ``[~accountid:id]`` to GitHub mentions.

    Account ids are opaque and never resolved. A username becomes ``@login``
    when ``resolve_mention`` knows it; anything else becomes ``@user``.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(2).strip()
        if match.group(1) is None and name and resolve_mention is not None:
            login = resolve_mention(name)
            if login:
                return f"@{login}"
        return "@user"

    return _LEGACY_MENTION_RE.sub(_replace, text)


class RichTextExtractor:
    """Visitor turning an ADF document tree into plain markdown text.

    Media nodes are skipped (attachments are listed separately after being
    re-hosted). Mentions never expose the Jira account id: they resolve to a
    GitHub login through ``resolve_mention`` or fall back to the display name.
    """

    def __init__(self, resolve_mention: Callable[[str], str | None] | None = None) -> None:
        self._resolve_mention = resolve_mention
        self._handlers: dict[NodeKind, Callable[[dict[str, Any]], str | None]] = {
            NodeKind.TEXT: self._visit_text,
            NodeKind.PARAGRAPH: self._visit_paragraph,
            NodeKind.MENTION: self._visit_mention,
            NodeKind.HARD_BREAK: lambda _node: "\n",
            NodeKind.EMOJI: self._visit_emoji,
            NodeKind.MEDIA: lambda _node: None,
            NodeKind.CARD: self._visit_card,
            NodeKind.CONTAINER: self._visit_container,
            NodeKind.UNKNOWN: self._visit_unknown,
        }

    def extract(self, document: Any) -> str:  # noqa: ANN401 - payload shape varies
        """Extract text from an ADF document, a list of nodes, or a legacy string."""
        if document is None:
            return ""
        if isinstance(document, str):
            return rewrite_legacy_mentions(rewrite_legacy_images(document), self._resolve_mention)
        if isinstance(document, list):
            return "\n".join(self._children(document))
        if isinstance(document, dict):
            return self._visit(document) or ""
        logger.debug(f"Ignoring rich text of unexpected type {type(document).__name__}")
        return ""

    def _visit(self, node: Any) -> str | None:  # noqa: ANN401
        if isinstance(node, str):
            return node
        if not isinstance(node, dict):
            return None
        return self._handlers[node_kind(node)](node)

    def _children(self, nodes: list[Any]) -> list[str]:
        parts = (self._visit(child) for child in nodes)
        return [part for part in parts if part is not None]

    def _visit_text(self, node: dict[str, Any]) -> str:
        text = node.get("text") or ""
        for mark in node.get("marks") or []:
            mark_type = mark.get("type") if isinstance(mark, dict) else None
            if mark_type == "code":
                text = f"`{text}`"
            elif mark_type == "link":
                href = (mark.get("attrs") or {}).get("href")
                if href:
                    text = f"[{text}]({href})"
        return text

    def _visit_paragraph(self, node: dict[str, Any]) -> str:
        return "".join(self._children(node.get("content") or []))

    def _visit_container(self, node: dict[str, Any]) -> str:
        return "\n".join(self._children(node["content"]))

    def _visit_mention(self, node: dict[str, Any]) -> str:
        attrs = node.get("attrs") or {}
        display_name = str(attrs.get("text") or "").lstrip("@").strip()
        if not display_name:
            return "@user"
        if self._resolve_mention is not None:
            login = self._resolve_mention(display_name)
            if login:
                return f"@{login}"
        return f"@{display_name}"

    def _visit_emoji(self, node: dict[str, Any]) -> str:
        attrs = node.get("attrs") or {}
        return str(attrs.get("text") or attrs.get("shortName") or "")

    def _visit_card(self, node: dict[str, Any]) -> str | None:
        url = (node.get("attrs") or {}).get("url")
        return str(url) if url else None

    def _visit_unknown(self, node: dict[str, Any]) -> None:
        logger.debug(f"Ignoring unsupported rich text node type {node.get('type')!r}")
