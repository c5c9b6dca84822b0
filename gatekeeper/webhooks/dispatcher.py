"""Webhook event dispatcher: maps provider events to collaborator changes.

Classifies each provider event into an intent, turns the intent plus the
live membership state into an access decision, and applies it through the
collaborator client.

Contract:
- Classification is a pure function of the event name (or refund flag)
- Grant checks membership first and skips the add if already present
- Revoke is unconditional; the client treats "already absent" as success
- Cancellation is a grace period: acknowledged, access kept
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventIntent(str, enum.Enum):
    GRANT = "grant-intent"
    REVOKE = "revoke-intent"
    GRACE_PERIOD = "grace-period"
    IGNORED = "ignored"


class AccessDecision(str, enum.Enum):
    GRANT = "grant"
    REVOKE = "revoke"
    NO_OP = "no-op"


# Lemon Squeezy event name -> intent. Exact, case-sensitive match.
_LEMONSQUEEZY_EVENT_MAP: dict[str, EventIntent] = {
    "order_created": EventIntent.GRANT,
    "subscription_created": EventIntent.GRANT,
    "order_refunded": EventIntent.REVOKE,
    "subscription_expired": EventIntent.REVOKE,
    "subscription_payment_refunded": EventIntent.REVOKE,
    # Access stays until the subscription actually expires.
    "subscription_cancelled": EventIntent.GRACE_PERIOD,
}

GRACE_PERIOD_REASON = "grace_period"


class CollaboratorAPI(Protocol):
    """The three collaborator operations the dispatcher needs."""

    async def is_member(self, username: str) -> bool: ...

    async def grant(self, username: str, permission: str | None = None) -> None: ...

    async def revoke(self, username: str) -> None: ...


@dataclass
class AccessOutcome:
    """What a delivery resulted in, rendered as the HTTP acknowledgement."""

    action: str  # granted, revoked, no-op, ignored
    identity: str
    event: str = ""
    reason: str | None = None
    already_member: bool = False

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"ok": True, "action": self.action}
        if self.reason:
            body["reason"] = self.reason
        if self.action == "ignored":
            body["eventName"] = self.event
        body["gh"] = self.identity
        return body


def classify_lemonsqueezy_event(event_name: str) -> EventIntent:
    """Intent for a Lemon Squeezy event name; unknown names are ignored."""
    return _LEMONSQUEEZY_EVENT_MAP.get(event_name, EventIntent.IGNORED)


def classify_gumroad_refund(refunded: bool) -> EventIntent:
    """Gumroad has no event taxonomy: a refund revokes, anything else grants."""
    return EventIntent.REVOKE if refunded else EventIntent.GRANT


def decide(intent: EventIntent, is_member: bool | None = None) -> AccessDecision:
    """Access decision for an intent and the current membership state.

    ``is_member`` only matters for grants; revokes never look at it.
    """
    if intent is EventIntent.GRANT:
        return AccessDecision.NO_OP if is_member else AccessDecision.GRANT
    if intent is EventIntent.REVOKE:
        return AccessDecision.REVOKE
    return AccessDecision.NO_OP


async def grant_access(
    client: CollaboratorAPI, username: str, permission: str | None = None
) -> bool:
    """Add ``username`` unless already a collaborator.

    Returns:
        True if an add call was issued, False if the user was already present
    """
    already = await client.is_member(username)
    if decide(EventIntent.GRANT, already) is AccessDecision.NO_OP:
        logger.info("Already a collaborator, skipping add: %s", username)
        return False
    await client.grant(username, permission)
    return True


async def revoke_access(client: CollaboratorAPI, username: str) -> None:
    """Remove ``username``; succeeds if they were never a collaborator."""
    await client.revoke(username)


async def apply_intent(
    client: CollaboratorAPI,
    intent: EventIntent,
    username: str,
    event_name: str = "",
    permission: str | None = None,
) -> AccessOutcome:
    """Apply ``intent`` for ``username`` and describe the result.

    Raises:
        AccessControlError: the collaborator API failed
    """
    if intent is EventIntent.GRANT:
        added = await grant_access(client, username, permission)
        return AccessOutcome(
            action="granted",
            identity=username,
            event=event_name,
            already_member=not added,
        )

    if intent is EventIntent.REVOKE:
        await revoke_access(client, username)
        return AccessOutcome(action="revoked", identity=username, event=event_name)

    if intent is EventIntent.GRACE_PERIOD:
        return AccessOutcome(
            action="no-op",
            identity=username,
            event=event_name,
            reason=GRACE_PERIOD_REASON,
        )

    return AccessOutcome(action="ignored", identity=username, event=event_name)
