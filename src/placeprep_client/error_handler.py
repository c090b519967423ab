import logging
from typing import Any, Optional

import httpx

lib_logger = logging.getLogger("placeprep_client")


class ApiError(Exception):
    """
    Base error for every failed call made through the client.

    Attributes:
        message: Human-readable summary
        status_code: HTTP status, or None when no response was received
        detail: The backend's error detail (FastAPI `{"detail": ...}`), if any
        response: The httpx.Response that produced the error, if any
        request_id: Id of the originating request, for log correlation
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Any = None,
        response: Optional[httpx.Response] = None,
        request_id: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        self.response = response
        self.request_id = request_id
        super().__init__(message)


class ServerError(ApiError):
    """A non-401 HTTP error status (>= 400). Surfaced to the caller unchanged."""


class NetworkError(ApiError):
    """Transport-level failure: no response was received."""


class SessionExpiredError(ApiError):
    """
    Terminal authorization failure. The session cannot be recovered
    automatically and the user must log in again.
    """

    def __init__(self, message: str = "Session expired, please log in again", **kwargs):
        kwargs.setdefault("status_code", 401)
        super().__init__(message, **kwargs)


class RefreshRejectedError(ApiError):
    """
    The refresh endpoint rejected the refresh credential, or answered with a
    body that does not hold a complete credential pair.
    """


# Error kinds, in the order they are checked
UNAUTHORIZED_RECOVERABLE = "unauthorized_recoverable"
UNAUTHORIZED_TERMINAL = "unauthorized_terminal"
NETWORK = "network"
SERVER = "server"
UNKNOWN = "unknown"


def classify_error(e: Exception) -> str:
    """
    Map an exception to an error kind.

    A raw 401 `httpx.HTTPStatusError` is recoverable (a refresh may fix it);
    a SessionExpiredError or a rejected refresh is terminal.
    """
    if isinstance(e, (SessionExpiredError, RefreshRejectedError)):
        return UNAUTHORIZED_TERMINAL
    if isinstance(e, NetworkError):
        return NETWORK
    if isinstance(e, ServerError):
        return SERVER
    if isinstance(e, httpx.HTTPStatusError):
        if e.response.status_code == 401:
            return UNAUTHORIZED_RECOVERABLE
        return SERVER
    if isinstance(e, (httpx.TimeoutException, httpx.RequestError)):
        return NETWORK
    return UNKNOWN


def is_transport_failure(e: Exception) -> bool:
    """True for failures where the server never rejected anything (network, 5xx)."""
    if isinstance(e, NetworkError):
        return True
    return isinstance(e, ServerError) and (e.status_code or 0) >= 500


def extract_error_detail(response: httpx.Response) -> Any:
    """
    Pull the error detail out of a backend response.

    The backend is FastAPI, so errors look like `{"detail": "..."}` or
    `{"detail": [{"loc": ..., "msg": ...}]}` for validation errors.
    Falls back to the raw text (truncated) when the body is not JSON.
    """
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:300] if text else None

    if isinstance(body, dict) and "detail" in body:
        return body["detail"]
    return body


def format_detail(detail: Any) -> str:
    """Render a detail value as one line for display."""
    if detail is None:
        return ""
    if isinstance(detail, list):
        messages = []
        for item in detail:
            if isinstance(item, dict) and "msg" in item:
                messages.append(str(item["msg"]))
            else:
                messages.append(str(item))
        return "; ".join(messages)
    return str(detail)


def mask_credential(credential: Optional[str]) -> str:
    """
    Mask a token for safe display in logs and error messages.

    Shows the last 6 characters (e.g., "...xyz123").
    """
    if not credential:
        return "<none>"
    if len(credential) > 6:
        return f"...{credential[-6:]}"
    return "***"
