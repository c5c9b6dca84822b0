"""Provider payload extractors.

Each provider puts the buyer's GitHub handle somewhere different, under one
of several legacy field names. The extractors read those locations in a
fixed priority order and return an ``ExtractedEvent``. They never raise:
absent or oddly-shaped data yields ``None`` / ``False``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from gatekeeper.exceptions import PayloadError

logger = logging.getLogger(__name__)

LEMONSQUEEZY = "lemonsqueezy"
GUMROAD = "gumroad"

# Custom-field names buyers have been asked for over time, highest priority first.
USERNAME_ALIASES: tuple[str, ...] = ("github_username", "github", "githubUser", "github_user")

LEMONSQUEEZY_EVENT_HEADER = "x-event-name"

_LEMONSQUEEZY_USERNAME_PATHS: tuple[Sequence[str], ...] = tuple(
    ("meta", "custom_data", alias) for alias in USERNAME_ALIASES
)

# Nested custom fields first, then the two top-level names.
_GUMROAD_USERNAME_PATHS: tuple[Sequence[str], ...] = tuple(
    ("sale", "custom_fields", alias) for alias in USERNAME_ALIASES
) + (("github_username",), ("github",))

# sale[custom_fields][github] -> ["sale", "custom_fields", "github"]
_BRACKET_KEY_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")


@dataclass(frozen=True)
class OrderItem:
    """First order item of a Lemon Squeezy order, for log context."""

    product_id: int | None = None
    variant_id: int | None = None
    product_name: str | None = None
    variant_name: str | None = None


@dataclass(frozen=True)
class ExtractedEvent:
    """Provider payload reduced to what the access decision needs."""

    provider: str
    event: str
    identity_candidate: str | None
    refunded: bool = False
    order_item: OrderItem | None = None


def _dig(data: Any, path: Sequence[str]) -> Any:
    """Follow ``path`` through nested mappings; None if any step is missing."""
    current = data
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def _first_string(data: Any, paths: Iterable[Sequence[str]]) -> str | None:
    """Return the first non-blank string found at ``paths``, trimmed."""
    for path in paths:
        value = _dig(data, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


# ── Lemon Squeezy ─────────────────────────────────────────────────────────


def parse_lemonsqueezy_payload(raw_body: bytes) -> dict[str, Any]:
    """Decode a verified Lemon Squeezy body.

    Only call this after the signature has been checked against the same bytes.

    Raises:
        PayloadError: body is not UTF-8 JSON, or not a JSON object
    """
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PayloadError(f"Invalid JSON payload: {e}") from e
    if not isinstance(payload, dict):
        raise PayloadError("Webhook payload must be a JSON object")
    return payload


def get_lemonsqueezy_event_name(headers: Mapping[str, Any], payload: Any) -> str:
    """Event name from X-Event-Name, falling back to meta.event_name.

    Header lookup is case-insensitive. A repeated header contributes its first
    value.
    """
    header_value = None
    for key, value in headers.items():
        if key.lower() == LEMONSQUEEZY_EVENT_HEADER:
            header_value = value
            break
    if isinstance(header_value, (list, tuple)):
        header_value = header_value[0] if header_value else None
    if header_value is not None:
        return str(header_value)

    event_name = _dig(payload, ("meta", "event_name"))
    return "" if event_name is None else str(event_name)


def extract_lemonsqueezy_username(payload: Any) -> str | None:
    """GitHub handle candidate from meta.custom_data."""
    return _first_string(payload, _LEMONSQUEEZY_USERNAME_PATHS)


def extract_lemonsqueezy_order_item(payload: Any) -> OrderItem:
    """data.attributes.first_order_item, keeping only well-typed fields."""
    item = _dig(payload, ("data", "attributes", "first_order_item"))
    if not isinstance(item, Mapping):
        return OrderItem()

    def _int(key: str) -> int | None:
        value = item.get(key)
        # bool is an int subclass; JSON true/false is not an id
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return int(value)

    def _str(key: str) -> str | None:
        value = item.get(key)
        return value if isinstance(value, str) else None

    return OrderItem(
        product_id=_int("product_id"),
        variant_id=_int("variant_id"),
        product_name=_str("product_name"),
        variant_name=_str("variant_name"),
    )


def extract_lemonsqueezy(headers: Mapping[str, Any], payload: Any) -> ExtractedEvent:
    """Reduce a parsed Lemon Squeezy delivery to an ExtractedEvent."""
    return ExtractedEvent(
        provider=LEMONSQUEEZY,
        event=get_lemonsqueezy_event_name(headers, payload),
        identity_candidate=extract_lemonsqueezy_username(payload),
        order_item=extract_lemonsqueezy_order_item(payload),
    )


# ── Gumroad ───────────────────────────────────────────────────────────────


def expand_form_fields(fields: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Expand bracketed form keys into nested dicts.

    Gumroad Ping posts custom fields as ``sale[custom_fields][github]=bob``.
    Plain keys are kept as-is. When a key is repeated the first value wins.
    A key that collides with an existing scalar is left flat rather than
    overwriting it.
    """
    result: dict[str, Any] = {}
    for key, value in fields:
        match = _BRACKET_KEY_RE.match(key)
        if not match or not match.group(2):
            result.setdefault(key, value)
            continue

        parts = [match.group(1)] + re.findall(r"\[([^\[\]]*)\]", match.group(2))
        node = result
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                node = None
                break
            node = child
        if node is None:
            result.setdefault(key, value)
            continue
        node.setdefault(parts[-1], value)
    return result


def extract_gumroad_username(body: Any) -> str | None:
    """GitHub handle candidate from sale.custom_fields or top-level fields."""
    return _first_string(body, _GUMROAD_USERNAME_PATHS)


def is_gumroad_refund(body: Any) -> bool:
    """Best-effort refund flag from sale.refunded.

    Native booleans are kept; strings count as refunded only for "true"
    (any case) or "1". Everything else is not a refund.
    """
    refunded = _dig(body, ("sale", "refunded"))
    if isinstance(refunded, bool):
        return refunded
    if isinstance(refunded, str):
        return refunded.lower() == "true" or refunded == "1"
    return False


def extract_gumroad(body: Any) -> ExtractedEvent:
    """Reduce a Gumroad Ping body to an ExtractedEvent.

    Gumroad has no event names; the event is reported as "refund" or "sale"
    for logging only.
    """
    refunded = is_gumroad_refund(body)
    return ExtractedEvent(
        provider=GUMROAD,
        event="refund" if refunded else "sale",
        identity_candidate=extract_gumroad_username(body),
        refunded=refunded,
    )
