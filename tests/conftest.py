"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient

from school_notify import config
from school_notify.infra.memory_store import MemoryNotificationStore
from school_notify.main import create_app
from school_notify.security.jwt_utils import create_token
from school_notify.services.change_feed import ChangeFeed

TEST_SECRET = "test-secret-with-enough-bytes-for-hs256"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET", TEST_SECRET)
    monkeypatch.setattr(config, "JWT_ALG", "HS256")


@pytest.fixture
def store():
    return MemoryNotificationStore()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def app(store, feed):
    return create_app(store=store, feed=feed, start_consumer=False)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Build Authorization headers for a user id."""
    def _headers(user_id="u1"):
        return {"Authorization": f"Bearer {create_token(user_id)}"}
    return _headers
