import logging
from typing import Any, Callable, Dict, Optional

import httpx

from .auth_endpoints import AuthEndpoints
from .config import ClientConfig
from .credential_store import ClientStorage, CredentialPair, CredentialStore
from .dispatcher import RequestDispatcher
from .middleware import RefreshStage, RequestSpec, bearer_auth, default_headers
from .refresh_coordinator import RefreshCoordinator
from .session_failure import SessionFailureHandler
from .timeout_config import TimeoutConfig

lib_logger = logging.getLogger("placeprep_client")


class PlacePrepClient:
    """
    Authenticated client for the PlacePrep backend API.

    One instance owns its credential store, refresh coordinator, dispatcher
    and session failure handler. Pass the instance to whatever needs to call
    the API; there is no process-wide client state.

    Usage:
        async with PlacePrepClient(ClientConfig.from_env()) as client:
            await client.login("ada@example.com", "secret")
            response = await client.get("/dashboard")
            dashboard = response.json()
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        store: Optional[CredentialStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or ClientConfig.from_env()
        self.store = store or CredentialStore(
            ClientStorage(
                namespace=self.config.storage_namespace,
                storage_dir=self.config.storage_dir,
            )
        )

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=TimeoutConfig.default()
        )

        self.failure_handler = SessionFailureHandler(
            self.store, login_redirect=self.config.login_redirect
        )
        self.auth = AuthEndpoints(self.http_client, self.config)
        self.coordinator = RefreshCoordinator(
            self.store,
            refresher=self.auth.refresh,
            failure_handler=self.failure_handler,
            terminal_on_transport_error=self.config.terminal_on_refresh_transport_error,
        )

        self.dispatcher = RequestDispatcher(
            self.http_client,
            self.config.api_url,
            failure_handler=self.failure_handler,
        )
        self.dispatcher.add_request_step(default_headers({"Accept": "application/json"}))
        self.dispatcher.add_request_step(bearer_auth(self.store))
        self.dispatcher.add_response_step(
            RefreshStage(self.coordinator, replay=self.dispatcher.send)
        )

        lib_logger.debug(f"PlacePrepClient initialized for {self.config.api_url}")

    async def __aenter__(self) -> "PlacePrepClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.coordinator.aclose()
        if self._owns_http_client:
            await self.http_client.aclose()

    # --- session -----------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.store.get() is not None

    def on_session_expired(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """
        Register a listener called with the login entry point when the
        session can no longer be recovered. Returns an unregister function.
        """
        return self.failure_handler.add_listener(listener)

    def _start_session(self, pair: CredentialPair) -> CredentialPair:
        self.store.set(pair)
        self.failure_handler.acknowledge()
        return pair

    async def login(self, email: str, password: str) -> CredentialPair:
        pair = await self.auth.login(email, password)
        lib_logger.info(f"Logged in as {email}")
        return self._start_session(pair)

    async def register(self, name: str, email: str, password: str) -> CredentialPair:
        pair = await self.auth.register(name, email, password)
        lib_logger.info(f"Registered {email}")
        return self._start_session(pair)

    def logout(self) -> None:
        """Forget the session locally. No redirect is signalled."""
        self.store.clear()
        lib_logger.info("Logged out")

    # --- requests ----------------------------------------------------------

    async def send(self, spec: RequestSpec) -> httpx.Response:
        return await self.dispatcher.send(spec)

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await self.dispatcher.request(method, path, **kwargs)

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.dispatcher.get(path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response:
        return await self.dispatcher.post(path, **kwargs)

    async def put(self, path: str, **kwargs) -> httpx.Response:
        return await self.dispatcher.put(path, **kwargs)

    async def patch(self, path: str, **kwargs) -> httpx.Response:
        return await self.dispatcher.patch(path, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response:
        return await self.dispatcher.delete(path, **kwargs)

    async def upload(
        self,
        path: str,
        files: Any,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """POST a multipart upload with the longer upload timeout."""
        return await self.dispatcher.post(
            path, files=files, params=params, data=data, timeout=TimeoutConfig.upload()
        )

    def get_status(self) -> Dict[str, Any]:
        """Get client status for debugging/monitoring."""
        return {
            "api_url": self.config.api_url,
            "authenticated": self.is_authenticated,
            "session_expiry_pending": self.failure_handler.episode_open,
            "refresh": self.coordinator.get_status(),
        }
