"""GitHub username normalization.

The buyer types their handle into a checkout custom field, so the value is
free text. ``normalize_username`` turns it into a handle the collaborator API
will accept, or ``None``.
"""

from __future__ import annotations

import re

MAX_USERNAME_LENGTH = 39

# Alphanumeric at both ends, hyphens allowed inside. Consecutive hyphens are
# accepted: older GitHub accounts still carry them.
_USERNAME_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$")


def normalize_username(raw: object) -> str | None:
    """Return the canonical handle for ``raw``, or None if it is not one.

    Whitespace is trimmed and a single leading ``@`` is stripped before
    validation. Never raises.
    """
    if not isinstance(raw, str):
        return None
    username = raw.strip()
    if username.startswith("@"):
        username = username[1:]
    if not username or len(username) > MAX_USERNAME_LENGTH:
        return None
    if not _USERNAME_RE.fullmatch(username):
        return None
    return username
