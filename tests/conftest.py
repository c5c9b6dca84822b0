"""Shared fixtures for the Gatekeeper test suite."""

from __future__ import annotations

import hashlib
import hmac
from urllib.parse import unquote

import httpx
import pytest

from gatekeeper.config import Settings

LEMON_SECRET = "lemon-test-secret"
GUMROAD_TOKEN = "gumroad-test-token"
ADMIN_KEY = "admin-test-key"


class FakeGitHub:
    """In-memory collaborators API behind an httpx.MockTransport.

    Records every request as (method, username). ``fail_with`` forces every
    response to that status code.
    """

    def __init__(self, members=()):
        self.members: set[str] = set(members)
        self.calls: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        username = unquote(request.url.path.rsplit("/", 1)[-1])
        self.calls.append((request.method, username))

        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="upstream exploded")

        if request.method == "GET":
            return httpx.Response(204 if username in self.members else 404)
        if request.method == "PUT":
            if username in self.members:
                return httpx.Response(204)
            self.members.add(username)
            return httpx.Response(201, json={"id": 1})
        if request.method == "DELETE":
            if username not in self.members:
                return httpx.Response(404, json={"message": "Not Found"})
            self.members.discard(username)
            return httpx.Response(204)
        return httpx.Response(405)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)


def _sign(body: bytes, secret: str = LEMON_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def sign():
    """Factory for valid X-Signature values: sign(body, secret=LEMON_SECRET)."""
    return _sign


@pytest.fixture
def settings() -> Settings:
    """Fully configured settings, isolated from the process environment."""
    return Settings(
        _env_file=None,
        github_token="gh-test-token",
        github_owner="acme",
        github_repo="private-repo",
        github_permission="pull",
        github_api_url="https://api.github.test",
        lemon_signing_secret=LEMON_SECRET,
        gumroad_webhook_token=GUMROAD_TOKEN,
        admin_key=ADMIN_KEY,
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()
