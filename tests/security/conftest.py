"""HTTP-level fixtures.

Creates the FastAPI app against the in-memory GitHub fake, so every request
runs the full route: authenticate, extract, normalize, decide, apply.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from gatekeeper.serve import create_app


@pytest.fixture
def app(settings, fake_github):
    return create_app(settings, transport=fake_github.transport)


@pytest.fixture
def client(app):
    """TestClient that returns 500s instead of raising."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def make_client(fake_github):
    """Factory for a client with overridden settings."""
    clients = []

    def _make(settings):
        c = TestClient(create_app(settings, transport=fake_github.transport), raise_server_exceptions=False)
        c.__enter__()
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.__exit__(None, None, None)
