"""Webhook HTTP handlers: FastAPI route handlers for inbound webhooks.

Each handler:
1. Authenticates the channel (signature over raw body, or query token)
2. Extracts the event signal and GitHub handle candidate
3. Normalizes the handle (invalid -> 200 "skipped", retrying cannot fix it)
4. Classifies the event and applies grant/revoke/no-op idempotently
5. Returns a JSON acknowledgement

Error contract:
- 401 for signature/token failures, before any downstream call
- 500 for configuration, payload and collaborator API failures, so that
  providers that retry on non-2xx redeliver
- Every outcome writes one WEBHOOK_AUDIT log line
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gatekeeper.config import Settings
from gatekeeper.exceptions import GatekeeperError
from gatekeeper.identity import normalize_username
from gatekeeper.tools.collaborators import CollaboratorClient
from gatekeeper.webhooks.dispatcher import (
    AccessOutcome,
    EventIntent,
    apply_intent,
    classify_gumroad_refund,
    classify_lemonsqueezy_event,
)
from gatekeeper.webhooks.providers import (
    GUMROAD,
    LEMONSQUEEZY,
    ExtractedEvent,
    expand_form_fields,
    extract_gumroad,
    extract_lemonsqueezy,
    parse_lemonsqueezy_payload,
)
from gatekeeper.webhooks.verification import verify_lemonsqueezy

logger = logging.getLogger(__name__)

SKIPPED_MISSING_USERNAME = "missing_github_username"


def _log_webhook(provider: str, event_type: str, username: str, status: str) -> None:
    """Audit log for webhook activity."""
    logger.info(
        "WEBHOOK_AUDIT provider=%s event=%s gh=%s status=%s",
        provider,
        event_type or "unknown",
        username or "-",
        status,
    )


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status_code)


def failure_response(provider: str, exc: Exception, event: str = "") -> JSONResponse:
    """500 for a failed delivery; the provider will redeliver."""
    _log_webhook(provider, event, "", "failed")
    if isinstance(exc, GatekeeperError):
        logger.error("%s webhook failed: %s", provider, exc)
        return error_response(500, str(exc))
    logger.exception("%s webhook failed unexpectedly", provider)
    return error_response(500, "Internal error")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_collaborator_client(request: Request, settings: Settings) -> tuple[CollaboratorClient, str]:
    """Collaborator client for the configured repo, plus the permission to grant.

    Raises:
        ConfigurationError: GitHub token/owner/repo not set
    """
    repo = settings.repo_config()
    client = CollaboratorClient.from_config(repo, http=request.app.state.http)
    return client, repo.permission


async def _process(
    request: Request, extracted: ExtractedEvent, intent: EventIntent
) -> JSONResponse:
    """Normalize the handle and apply ``intent``. Shared by both providers."""
    settings = get_settings(request)
    username = normalize_username(extracted.identity_candidate)

    if not username:
        # Acknowledge: a redelivery would carry the same bad handle.
        logger.warning(
            "[%s] missing/invalid github username (event=%s, raw=%r)",
            extracted.provider,
            extracted.event,
            extracted.identity_candidate,
        )
        _log_webhook(extracted.provider, extracted.event, "", "skipped")
        return JSONResponse({"ok": True, "skipped": SKIPPED_MISSING_USERNAME})

    client, permission = get_collaborator_client(request, settings)
    outcome: AccessOutcome = await apply_intent(
        client, intent, username, event_name=extracted.event, permission=permission
    )

    if extracted.order_item is not None and outcome.action in ("granted", "revoked"):
        logger.info(
            "[%s] %s %s (product=%s variant=%s)",
            extracted.provider,
            outcome.action,
            username,
            extracted.order_item.product_name or extracted.order_item.product_id,
            extracted.order_item.variant_name or extracted.order_item.variant_id,
        )
    status = "already_member" if outcome.already_member else outcome.action
    _log_webhook(extracted.provider, extracted.event, username, status)
    return JSONResponse(outcome.to_response())


async def handle_lemonsqueezy(request: Request) -> JSONResponse:
    """Signed JSON webhook: verify raw bytes first, then parse."""
    start = time.time()
    settings = get_settings(request)
    event = ""
    try:
        secret = settings.require("lemon_signing_secret", strip=False)

        # Raw body; parsing before verification would break the signature.
        body = await request.body()
        headers = {k.lower(): v for k, v in request.headers.items()}

        if not verify_lemonsqueezy(body, headers, secret):
            _log_webhook(LEMONSQUEEZY, headers.get("x-event-name", ""), "", "signature_failed")
            return error_response(401, "Invalid signature")

        payload = parse_lemonsqueezy_payload(body)
        extracted = extract_lemonsqueezy(request.headers, payload)
        event = extracted.event
        intent = classify_lemonsqueezy_event(extracted.event)
        response = await _process(request, extracted, intent)
    except Exception as e:
        return failure_response(LEMONSQUEEZY, e, event)

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: %s", elapsed_ms, LEMONSQUEEZY)
    return response


async def handle_gumroad(request: Request) -> JSONResponse:
    """Form-encoded Ping: authenticated by the ``token`` query parameter."""
    start = time.time()
    settings = get_settings(request)
    event = ""
    try:
        expected_token = settings.require("gumroad_webhook_token", strip=False)
        provided_token = request.query_params.get("token", "")
        # Low-sensitivity shared token; plain equality.
        if provided_token != expected_token:
            _log_webhook(GUMROAD, "unknown", "", "token_failed")
            return error_response(401, "Invalid token")

        form = await request.form()
        body = expand_form_fields(form.multi_items())
        extracted = extract_gumroad(body)
        event = extracted.event
        intent = classify_gumroad_refund(extracted.refunded)
        response = await _process(request, extracted, intent)
    except Exception as e:
        return failure_response(GUMROAD, e, event)

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: %s", elapsed_ms, GUMROAD)
    return response


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook endpoint routes on the FastAPI app."""

    @app.post("/webhooks/lemonsqueezy")
    async def lemonsqueezy_webhook(request: Request):
        """Receive Lemon Squeezy webhooks (signature-verified)."""
        return await handle_lemonsqueezy(request)

    @app.post("/webhooks/gumroad")
    async def gumroad_webhook(request: Request):
        """Receive Gumroad Ping webhooks (token-verified)."""
        return await handle_gumroad(request)

    logger.info("Webhook routes registered: /webhooks/{lemonsqueezy,gumroad}")
