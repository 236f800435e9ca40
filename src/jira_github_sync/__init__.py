"""
Jira to GitHub issue sync

Receives Jira webhooks and mirrors the issues, their status and their comments
into a GitHub repository, re-hosting attachments as release assets.
"""

from __future__ import annotations

# Package version
__version__ = "0.1.0"

from .config import Settings, SyncConfig
from .engine import Action, SyncEngine, SyncResult, build_engine
from .exceptions import AuthFailure, ConfigurationFailure, MalformedInput, SyncError, UpstreamWriteFailure
from .utils import setup_logging

__all__ = [
    "Action",
    "AuthFailure",
    "ConfigurationFailure",
    "MalformedInput",
    "Settings",
    "SyncConfig",
    "SyncEngine",
    "SyncError",
    "SyncResult",
    "UpstreamWriteFailure",
    "__version__",
    "build_engine",
    "setup_logging",
]
