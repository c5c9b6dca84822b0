"""Exceptions raised by Gatekeeper.

Only the access-control client, settings lookup and signed-payload parsing
raise. Everything else encodes absence as ``None`` / ``False``. The webhook
handlers catch ``GatekeeperError`` at the route boundary and convert it to a
500 response.
"""

from __future__ import annotations


class GatekeeperError(Exception):
    """Base class for all Gatekeeper errors."""


class ConfigurationError(GatekeeperError):
    """Raised when a required setting is missing."""

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(f"Missing env: {setting}")


class AccessControlError(GatekeeperError):
    """Raised when the collaborator API answers with an unexpected status."""

    def __init__(self, operation: str, status_code: int | None = None, body: str = ""):
        self.operation = operation
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"GitHub {operation} failed: {body}"
        else:
            message = f"GitHub {operation} unexpected status={status_code} body={body}"
        super().__init__(message)


class PayloadError(GatekeeperError):
    """Raised when a verified webhook body is not a JSON object."""
