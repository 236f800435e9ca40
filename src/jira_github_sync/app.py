"""FastAPI application receiving Jira webhooks"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from . import __version__
from .config import Settings
from .engine import SyncEngine, build_engine
from .fields import FieldMap

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, *, engine: SyncEngine | None = None) -> FastAPI:
    """Build the application; one FieldMap is shared by every request it serves."""
    settings = settings or Settings()
    if engine is None:
        engine = build_engine(settings, FieldMap())

    app = FastAPI(
        title="Jira to GitHub Sync",
        description="Mirror Jira issues and comments into GitHub issues",
        version=__version__,
    )
    app.state.engine = engine

    async def receive_webhook(request: Request) -> JSONResponse:
        raw_body = await request.body()
        # The engine does blocking HTTP calls
        result = await run_in_threadpool(
            request.app.state.engine.handle, raw_body, dict(request.headers), dict(request.query_params)
        )
        return JSONResponse(status_code=result.status_code, content=result.body())

    app.add_api_route("/webhook", receive_webhook, methods=["POST"])
    app.add_api_route("/", receive_webhook, methods=["POST"])

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint"""
        return {"status": "healthy"}

    logger.info(f"Webhook endpoint ready for {settings.github_owner or '?'}/{settings.github_repo or '?'}")
    return app
