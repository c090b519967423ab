"""
Pytest configuration and fixtures for the test suite.
"""
import os
import sys
from typing import List, Optional

import httpx
import pytest
import pytest_asyncio
import respx

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from placeprep_client.client import PlacePrepClient
from placeprep_client.config import ClientConfig
from placeprep_client.credential_store import ClientStorage, CredentialPair, CredentialStore
from placeprep_client.failure_logger import configure_failure_logger

BACKEND_URL = "http://testserver"
API_URL = f"{BACKEND_URL}/api"


class FakeBackend:
    """
    Minimal stand-in for the PlacePrep backend's auth behavior.

    Access tokens are valid until the next refresh; each refresh rotates both
    tokens, so a refresh token can only be used once.
    """

    def __init__(self, access_token: str = "access-0", refresh_token: str = "refresh-0"):
        self.valid_access = access_token
        self.valid_refresh = refresh_token
        self.generation = 0
        self.refresh_calls = 0
        self.refresh_status: Optional[int] = None
        self.refresh_body: Optional[dict] = None
        self.always_unauthorized = False
        self.seen_authorization: List[Optional[str]] = []

    def refresh(self, request: httpx.Request) -> httpx.Response:
        self.refresh_calls += 1
        if self.refresh_status is not None:
            return httpx.Response(self.refresh_status, json={"detail": "Refresh failed"})
        if request.headers.get("refresh-token") != self.valid_refresh:
            return httpx.Response(401, json={"detail": "Invalid refresh token"})
        if self.refresh_body is not None:
            return httpx.Response(200, json=self.refresh_body)

        self.generation += 1
        self.valid_access = f"access-{self.generation}"
        self.valid_refresh = f"refresh-{self.generation}"
        return httpx.Response(
            200,
            json={"access_token": self.valid_access, "refresh_token": self.valid_refresh},
        )

    def protected(self, request: httpx.Request) -> httpx.Response:
        authorization = request.headers.get("Authorization")
        self.seen_authorization.append(authorization)
        if not self.always_unauthorized and authorization == f"Bearer {self.valid_access}":
            return httpx.Response(200, json={"ok": True, "served_with": self.valid_access})
        return httpx.Response(401, json={"detail": "Could not validate credentials"})

    def expire_access_token(self) -> None:
        """Invalidate the current access token without touching the refresh token."""
        self.valid_access = "server-side-only"


@pytest.fixture(autouse=True)
def failure_log_dir(tmp_path):
    """Keep failure logs inside the test's temp dir."""
    logs_dir = tmp_path / "logs"
    configure_failure_logger(logs_dir)
    yield logs_dir
    configure_failure_logger(None)


@pytest.fixture
def config(tmp_path):
    return ClientConfig(backend_url=BACKEND_URL, storage_dir=tmp_path / "storage")


@pytest.fixture
def storage(config):
    return ClientStorage(namespace=config.storage_namespace, storage_dir=config.storage_dir)


@pytest.fixture
def store(storage):
    return CredentialStore(storage)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api_mock(backend):
    """respx router serving the fake backend under API_URL."""
    with respx.mock(base_url=API_URL, assert_all_called=False) as mock:
        mock.post("/auth/refresh", name="refresh").mock(side_effect=backend.refresh)
        mock.get("/dashboard", name="dashboard").mock(side_effect=backend.protected)
        mock.get("/applications", name="applications").mock(side_effect=backend.protected)
        mock.get("/companies", name="companies").mock(side_effect=backend.protected)
        yield mock


@pytest_asyncio.fixture
async def client(config, store):
    client = PlacePrepClient(config, store=store)
    yield client
    await client.aclose()


@pytest.fixture
def logged_in(store, backend):
    """Store holding the backend's current (valid) pair."""
    store.set(CredentialPair(backend.valid_access, backend.valid_refresh))
    return store


@pytest.fixture
def redirects(client):
    """Records every login redirect the client signals."""
    seen: List[str] = []
    client.on_session_expired(seen.append)
    return seen
