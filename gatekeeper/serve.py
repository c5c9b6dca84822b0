"""Gatekeeper HTTP server: app factory and entry point.

Routes:
- GET  /health                  liveness, no side effects
- POST /webhooks/lemonsqueezy   signed JSON (X-Signature)
- POST /webhooks/gumroad        form-encoded (?token=...)
- POST /admin/grant, /admin/revoke   X-Admin-Key
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI

from gatekeeper import __version__
from gatekeeper.admin import register_admin_routes
from gatekeeper.config import Settings
from gatekeeper.tools.collaborators import build_http_client
from gatekeeper.webhooks.handlers import register_webhook_routes

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health():
    """Liveness probe."""
    return {"ok": True}


def configure_logging(level: str = "INFO") -> None:
    """Send gatekeeper logs to stderr at ``level``."""
    root = logging.getLogger("gatekeeper")
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(handler)


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        settings: Configuration; read from the environment when omitted
        transport: httpx transport for the GitHub client (tests inject a mock)
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # One pool per startup, closed on shutdown.
        app.state.http = build_http_client(settings.github_api_url, settings.github_timeout, transport)
        yield
        await app.state.http.aclose()

    app = FastAPI(title="Gatekeeper", version=__version__, lifespan=lifespan)
    app.state.settings = settings

    app.include_router(health_router)
    register_webhook_routes(app)
    register_admin_routes(app)
    return app


def main() -> None:
    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level)
    logger.info("gatekeeper listening on http://%s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
