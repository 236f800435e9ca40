"""
Custom exception classes for the Jira to GitHub sync service.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync errors."""

    status_code: int = 500


class AuthFailure(SyncError):
    """Raised when the webhook signature or shared secret does not match."""

    status_code = 401


class MalformedInput(SyncError):
    """Raised when the webhook payload cannot be parsed."""

    status_code = 400


class ConfigurationFailure(SyncError):
    """Raised when required GitHub settings are missing."""

    status_code = 500


class UpstreamWriteFailure(SyncError):
    """Raised when GitHub rejects a create or update of an issue or comment."""

    status_code = 502


class AttachmentError(SyncError):
    """Raised when a single attachment cannot be downloaded or re-hosted."""
