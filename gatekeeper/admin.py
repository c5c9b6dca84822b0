"""Manual override endpoints: force-grant and force-revoke.

Both are gated by the ``X-Admin-Key`` header and take ``{"github": "..."}``.
The handle goes through the same normalization as webhook handles, and grant
keeps the membership check so repeated calls add once.
"""

from __future__ import annotations

import hmac
import json
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from gatekeeper.exceptions import GatekeeperError
from gatekeeper.identity import normalize_username
from gatekeeper.webhooks.dispatcher import EventIntent, apply_intent
from gatekeeper.webhooks.handlers import (
    error_response,
    get_collaborator_client,
    get_settings,
)

logger = logging.getLogger(__name__)

ADMIN_KEY_HEADER = "x-admin-key"


class OverrideRequest(BaseModel):
    github: Any = None


def _check_admin_key(request: Request, admin_key: str) -> bool:
    provided = request.headers.get(ADMIN_KEY_HEADER, "")
    return hmac.compare_digest(provided.encode("utf-8"), admin_key.encode("utf-8"))


async def _read_override(request: Request) -> OverrideRequest:
    """Parse the JSON body; anything unusable becomes an empty request."""
    try:
        data = json.loads(await request.body() or b"null")
        return OverrideRequest.model_validate(data)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        return OverrideRequest()


async def _override(request: Request, intent: EventIntent) -> JSONResponse:
    try:
        settings = get_settings(request)
        admin_key = settings.require("admin_key")
        if not _check_admin_key(request, admin_key):
            logger.warning("Admin %s rejected: bad or missing admin key", intent.value)
            return JSONResponse({"ok": False}, status_code=401)

        override = await _read_override(request)
        username = normalize_username(override.github)
        if not username:
            return error_response(400, "Bad github")

        client, permission = get_collaborator_client(request, settings)
        outcome = await apply_intent(
            client, intent, username, event_name=f"admin_{intent.name.lower()}", permission=permission
        )
    except GatekeeperError as e:
        logger.error("Admin %s failed: %s", intent.value, e)
        return error_response(500, str(e))
    except Exception:
        logger.exception("Admin %s failed unexpectedly", intent.value)
        return error_response(500, "Internal error")

    logger.info("Admin override: %s %s", outcome.action, username)
    return JSONResponse(outcome.to_response())


def register_admin_routes(app: FastAPI) -> None:
    """Register the manual grant/revoke endpoints."""

    @app.post("/admin/grant")
    async def admin_grant(request: Request):
        """Grant repo access to a handle directly."""
        return await _override(request, EventIntent.GRANT)

    @app.post("/admin/revoke")
    async def admin_revoke(request: Request):
        """Revoke repo access from a handle directly."""
        return await _override(request, EventIntent.REVOKE)
