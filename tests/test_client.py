"""
Tests for the PlacePrepClient facade: login, register, logout and uploads.
"""
import json

import httpx
import pytest

from placeprep_client.client import PlacePrepClient
from placeprep_client.credential_store import CredentialPair
from placeprep_client.error_handler import ApiError, NetworkError, ServerError


@pytest.fixture
def auth_routes(api_mock):
    api_mock.post("/auth/login", name="login").respond(
        200, json={"access_token": "access-0", "refresh_token": "refresh-0", "token_type": "bearer"}
    )
    api_mock.post("/auth/register", name="register").respond(
        201, json={"access_token": "access-0", "refresh_token": "refresh-0"}
    )
    return api_mock


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_stores_pair(self, client, auth_routes, store):
        pair = await client.login("ada@example.com", "secret")

        assert pair == CredentialPair("access-0", "refresh-0")
        assert store.get() == pair
        assert client.is_authenticated
        sent = auth_routes["login"].calls.last.request
        assert json.loads(sent.content) == {"email": "ada@example.com", "password": "secret"}
        assert "Authorization" not in sent.headers

    @pytest.mark.asyncio
    async def test_login_then_protected_call(self, client, auth_routes, backend):
        await client.login("ada@example.com", "secret")

        response = await client.get("/dashboard")

        assert response.json()["served_with"] == "access-0"

    @pytest.mark.asyncio
    async def test_bad_credentials_raise_with_detail(self, client, api_mock, store, redirects):
        api_mock.post("/auth/login").respond(401, json={"detail": "Incorrect email or password"})

        with pytest.raises(ApiError) as excinfo:
            await client.login("ada@example.com", "wrong")

        assert excinfo.value.status_code == 401
        assert excinfo.value.detail == "Incorrect email or password"
        assert store.get() is None
        # a failed login is not a session expiry
        assert redirects == []

    @pytest.mark.asyncio
    async def test_login_server_error(self, client, api_mock):
        api_mock.post("/auth/login").respond(503, text="Service Unavailable")

        with pytest.raises(ServerError):
            await client.login("ada@example.com", "secret")

    @pytest.mark.asyncio
    async def test_login_network_error(self, client, api_mock):
        api_mock.post("/auth/login").mock(side_effect=httpx.ConnectTimeout("timed out"))

        with pytest.raises(NetworkError):
            await client.login("ada@example.com", "secret")

    @pytest.mark.asyncio
    async def test_login_closes_expiry_episode(self, client, auth_routes, backend, redirects):
        backend.always_unauthorized = True
        await client.login("ada@example.com", "secret")
        with pytest.raises(ApiError):
            await client.get("/dashboard")
        assert redirects == ["/login"]

        await client.login("ada@example.com", "secret")
        assert not client.failure_handler.episode_open


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_starts_session(self, client, auth_routes, store):
        await client.register("Ada", "ada@example.com", "secret")

        sent = auth_routes["register"].calls.last.request
        assert json.loads(sent.content) == {
            "name": "Ada",
            "email": "ada@example.com",
            "password": "secret",
        }
        assert store.get() == CredentialPair("access-0", "refresh-0")

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client, api_mock):
        api_mock.post("/auth/register").respond(400, json={"detail": "Email already registered"})

        with pytest.raises(ApiError, match="Email already registered"):
            await client.register("Ada", "ada@example.com", "secret")


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_without_redirect(self, client, logged_in, store, redirects):
        client.logout()

        assert store.get() is None
        assert not client.is_authenticated
        assert redirects == []


class TestPersistence:
    @pytest.mark.asyncio
    async def test_new_client_resumes_session(self, config, client, auth_routes, backend):
        await client.login("ada@example.com", "secret")

        async with PlacePrepClient(config) as restarted:
            assert restarted.is_authenticated
            response = await restarted.get("/dashboard")

        assert response.json()["served_with"] == "access-0"


class TestUpload:
    @pytest.mark.asyncio
    async def test_multipart_upload_with_bearer(self, client, api_mock, logged_in):
        route = api_mock.post("/resume/analyze").respond(200, json={"score": 82})

        response = await client.upload(
            "/resume/analyze",
            files={"file": ("resume.pdf", b"%PDF-1.4 fake", "application/pdf")},
            data={"target_role": "backend"},
        )

        assert response.json() == {"score": 82}
        sent = route.calls.last.request
        assert sent.headers["Content-Type"].startswith("multipart/form-data")
        assert sent.headers["Authorization"] == "Bearer access-0"
        assert b"resume.pdf" in sent.content

    @pytest.mark.asyncio
    async def test_upload_replayed_after_refresh(self, client, api_mock, backend, logged_in):
        route = api_mock.post("/resume/analyze").mock(side_effect=backend.protected)
        backend.expire_access_token()

        response = await client.upload(
            "/resume/analyze",
            files={"file": ("resume.pdf", b"%PDF-1.4 fake", "application/pdf")},
        )

        assert response.json()["served_with"] == "access-1"
        assert route.call_count == 2
        assert b"resume.pdf" in route.calls.last.request.content


class TestStatus:
    @pytest.mark.asyncio
    async def test_status(self, client, logged_in):
        status = client.get_status()

        assert status["api_url"] == "http://testserver/api"
        assert status["authenticated"] is True
        assert status["session_expiry_pending"] is False
        assert status["refresh"]["state"] == "idle"
