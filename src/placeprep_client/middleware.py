# src/placeprep_client/middleware.py
"""
Request description and the composable pipeline steps around it.

A call travels through two ordered lists owned by the dispatcher:

- request steps: `(RequestSpec) -> RequestSpec`, run before transmission.
  Specs are immutable, so a step returns a modified copy.
- response steps: `async (RequestSpec, httpx.Response) -> httpx.Response`,
  run after a response arrives. A step may hand back the response untouched,
  substitute another one, or raise.

Credential refresh is the `RefreshStage` response step.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .credential_store import CredentialStore
from .refresh_coordinator import PendingRequest, RefreshCoordinator

lib_logger = logging.getLogger("placeprep_client")

AUTHORIZATION_HEADER = "Authorization"


def _new_request_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class RequestSpec:
    """
    Everything needed to (re)send one API call.

    `path` is resolved against the client's API base URL. `attempt` counts
    replays: 0 for the caller's own attempt, 1 for the replay after a refresh.
    `credential` records the access token attached for this attempt.
    """

    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    data: Optional[Dict[str, Any]] = None
    files: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[httpx.Timeout] = None
    attempt: int = 0
    credential: Optional[str] = field(default=None, repr=False)
    request_id: str = field(default_factory=_new_request_id)

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        # Own a copy so later header steps never touch the caller's dict
        object.__setattr__(self, "headers", dict(self.headers or {}))

    def with_headers(self, headers: Dict[str, str]) -> "RequestSpec":
        return replace(self, headers=headers)

    def next_attempt(self) -> "RequestSpec":
        """Copy of this spec marked as the replay after a credential refresh."""
        return replace(self, attempt=self.attempt + 1)

    @property
    def is_replay(self) -> bool:
        return self.attempt > 0

    def describe(self) -> str:
        return f"{self.method} {self.path} [{self.request_id}#{self.attempt}]"


RequestStep = Callable[[RequestSpec], RequestSpec]
ResponseStep = Callable[[RequestSpec, httpx.Response], Awaitable[httpx.Response]]


def bearer_auth(store: CredentialStore) -> RequestStep:
    """
    Request step attaching `Authorization: Bearer <access_token>`.

    The store is read at transmission time, so a replay picks up whatever
    pair is current. Without a pair, any Authorization header is dropped and
    the request goes out unauthenticated.
    """

    def attach(spec: RequestSpec) -> RequestSpec:
        headers = {
            k: v for k, v in spec.headers.items() if k.lower() != "authorization"
        }
        pair = store.get()
        if pair is None:
            return replace(spec, headers=headers, credential=None)
        headers[AUTHORIZATION_HEADER] = f"Bearer {pair.access_token}"
        return replace(spec, headers=headers, credential=pair.access_token)

    return attach


def default_headers(headers: Dict[str, str]) -> RequestStep:
    """Request step adding headers the caller did not set explicitly."""

    def add(spec: RequestSpec) -> RequestSpec:
        present = {k.lower() for k in spec.headers}
        merged = dict(spec.headers)
        for key, value in headers.items():
            if key.lower() not in present:
                merged[key] = value
        return spec.with_headers(merged)

    return add


class RefreshStage:
    """
    Response step turning a first-attempt 401 into refresh-then-replay.

    Anything else (other statuses, or a 401 on a replay) passes through
    untouched and is classified by the dispatcher.
    """

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        replay: Callable[[RequestSpec], Awaitable[httpx.Response]],
    ):
        self._coordinator = coordinator
        self._replay = replay

    async def __call__(self, spec: RequestSpec, response: httpx.Response) -> httpx.Response:
        if response.status_code != 401 or spec.is_replay:
            return response

        retry_spec = spec.next_attempt()
        lib_logger.debug(f"401 on {spec.describe()}, handing to refresh coordinator")
        await response.aclose()
        pending = PendingRequest(
            execute=lambda: self._replay(retry_spec),
            origin_id=spec.request_id,
            sent_with=spec.credential,
        )
        return await self._coordinator.submit(pending)
