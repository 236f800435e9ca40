"""
Command-line interface for the Jira to GitHub sync service.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import uvicorn

from .app import create_app
from .config import Settings
from .engine import build_engine
from .fields import FieldMap
from .utils import setup_logging


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Sync Jira issues into GitHub issues from Jira webhooks")
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the webhook HTTP server")
    _ = serve.add_argument("--host", help="Interface to bind (default: HOST setting)")
    _ = serve.add_argument("--port", type=int, help="Port to listen on (default: PORT setting)")

    replay = subparsers.add_parser("replay", help="Process a saved webhook payload once")
    _ = replay.add_argument("payload_file", type=Path, help="File containing the raw JSON payload")
    _ = replay.add_argument(
        "--header",
        "-H",
        action="append",
        default=[],
        help='Request header (format: "Name: value"). Can be specified multiple times.',
    )

    return parser.parse_args(argv)


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            msg = f"Invalid header {value!r}, expected 'Name: value'"
            raise ValueError(msg)
        headers[name.strip()] = content.strip()
    return headers


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)
    settings = Settings()

    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose, level=settings.log_level)
    logger = logging.getLogger(__name__)

    if args.command == "serve":
        uvicorn.run(
            create_app(settings),
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_config=None,
        )
        return

    try:
        headers = _parse_headers(args.header)
        raw_body = args.payload_file.read_bytes()
    except (OSError, ValueError) as e:
        logger.error(f"Cannot replay payload: {e}")
        sys.exit(2)

    result = build_engine(settings, FieldMap()).handle(raw_body, headers, {})
    print(json.dumps({"status": result.status_code, "action": result.action.value, **result.body()}))
    sys.exit(0 if result.status_code < 400 else 1)
