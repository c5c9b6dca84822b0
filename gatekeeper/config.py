"""Gatekeeper configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic_settings import BaseSettings

from gatekeeper.exceptions import ConfigurationError

GITHUB_API_URL = "https://api.github.com"

# Least-privileged collaborator tier on GitHub (read-only).
DEFAULT_PERMISSION = "pull"


@dataclass(frozen=True)
class RepoConfig:
    """Resolved downstream target: credentials, repository and permission."""

    token: str = field(repr=False)
    owner: str
    repo: str
    permission: str = DEFAULT_PERMISSION


class Settings(BaseSettings):
    """Environment-driven settings, read once at startup.

    Secrets default to empty strings so the process can start with only part
    of the surface configured. A route that needs a missing value fails that
    request with ``ConfigurationError`` instead of silently degrading.
    """

    # Downstream collaborator API
    github_token: str = ""
    github_owner: str = ""
    github_repo: str = ""
    github_permission: str = DEFAULT_PERMISSION
    github_api_url: str = GITHUB_API_URL
    github_timeout: float = 30.0

    # Per-provider credentials
    lemon_signing_secret: str = ""
    gumroad_webhook_token: str = ""

    # Manual override endpoints
    admin_key: str = ""

    # Server
    host: str = "0.0.0.0"
    port: int = 8787
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    def require(self, name: str, strip: bool = True) -> str:
        """Return the setting ``name``, raising if it is empty.

        Signing secrets are HMAC keys and are returned byte-for-byte
        (``strip=False``).
        """
        value = str(getattr(self, name) or "")
        if not value.strip():
            raise ConfigurationError(name.upper())
        return value.strip() if strip else value

    def repo_config(self) -> RepoConfig:
        """Collaborator API target. Raises ConfigurationError if incomplete."""
        return RepoConfig(
            token=self.require("github_token"),
            owner=self.require("github_owner"),
            repo=self.require("github_repo"),
            permission=(self.github_permission or "").strip() or DEFAULT_PERMISSION,
        )
