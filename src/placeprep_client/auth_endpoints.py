import logging
from typing import Any, Dict, Optional

import httpx

from .config import ClientConfig
from .credential_store import CredentialPair
from .error_handler import (
    ApiError,
    NetworkError,
    RefreshRejectedError,
    ServerError,
    extract_error_detail,
    format_detail,
)

lib_logger = logging.getLogger("placeprep_client")

REFRESH_TOKEN_HEADER = "refresh-token"


class AuthEndpoints:
    """
    Calls to the backend's /auth endpoints.

    These go straight through the HTTP client, outside the dispatcher
    pipeline: they must never carry a bearer token nor trigger a refresh.
    """

    def __init__(self, http_client: httpx.AsyncClient, config: ClientConfig):
        self._http = http_client
        self._config = config

    def _url(self, path: str) -> str:
        return f"{self._config.api_url}{path}"

    async def _post(
        self,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = self._url(path)
        try:
            return await self._http.post(url, json=json, headers=headers)
        except (httpx.TimeoutException, httpx.RequestError) as e:
            raise NetworkError(f"POST {path} failed: {e!r}") from e

    async def refresh(self, refresh_token: str) -> CredentialPair:
        """
        Exchange the refresh token for a new credential pair.

        Raises:
            RefreshRejectedError: 4xx answer or a body without both tokens
            ServerError: 5xx answer
            NetworkError: no answer
        """
        response = await self._post(
            self._config.refresh_path,
            json={},
            headers={REFRESH_TOKEN_HEADER: refresh_token},
        )
        status = response.status_code

        if status >= 500:
            raise ServerError(
                f"Refresh endpoint returned HTTP {status}",
                status_code=status,
                detail=extract_error_detail(response),
                response=response,
            )
        if not response.is_success:
            detail = extract_error_detail(response)
            raise RefreshRejectedError(
                f"Refresh credential rejected (HTTP {status}): {format_detail(detail)}",
                status_code=status,
                detail=detail,
                response=response,
            )

        try:
            return CredentialPair.from_payload(response.json())
        except ValueError as e:
            raise RefreshRejectedError(
                f"Malformed refresh response: {e}",
                status_code=status,
                response=response,
            ) from e

    async def login(self, email: str, password: str) -> CredentialPair:
        response = await self._post(
            self._config.login_path, json={"email": email, "password": password}
        )
        return self._credentials_from(response, "Login")

    async def register(self, name: str, email: str, password: str) -> CredentialPair:
        response = await self._post(
            self._config.register_path,
            json={"name": name, "email": email, "password": password},
        )
        return self._credentials_from(response, "Registration")

    def _credentials_from(self, response: httpx.Response, action: str) -> CredentialPair:
        status = response.status_code
        if not response.is_success:
            detail = extract_error_detail(response)
            error_cls = ServerError if status >= 500 else ApiError
            raise error_cls(
                f"{action} failed: {format_detail(detail) or f'HTTP {status}'}",
                status_code=status,
                detail=detail,
                response=response,
            )
        try:
            return CredentialPair.from_payload(response.json())
        except ValueError as e:
            raise ApiError(
                f"{action} response did not contain credentials: {e}",
                status_code=status,
                response=response,
            ) from e
