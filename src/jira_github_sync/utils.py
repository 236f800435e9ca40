"""
Utility functions for the Jira to GitHub sync service.
"""

from __future__ import annotations

import logging


def setup_logging(*, verbose: bool = False, level: str | None = None) -> None:
    """Configure logging for the sync service.

    ``verbose`` wins over ``level``; an unknown level name falls back to INFO.
    """
    if verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.getLevelName((level or "INFO").upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    # urllib3 logs every request at DEBUG
    logging.getLogger("urllib3").setLevel(max(log_level, logging.INFO))
