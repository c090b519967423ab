# src/placeprep_client/dispatcher.py

import logging
from typing import Any, Dict, List, Optional

import httpx

from .error_handler import (
    ApiError,
    NetworkError,
    ServerError,
    SessionExpiredError,
    extract_error_detail,
    format_detail,
)
from .failure_logger import log_failure
from .middleware import RequestSpec, RequestStep, ResponseStep
from .session_failure import SessionFailureHandler

lib_logger = logging.getLogger("placeprep_client")


class RequestDispatcher:
    """
    Sends RequestSpecs through the request/response step pipeline.

    Outcome of `send`:
    - 2xx: the response is returned
    - 401 that no response step resolved (a replay, or no refresh stage):
      SessionExpiredError, after handing the session to the failure handler
    - any other status: ServerError (>= 400) or ApiError
    - no response at all: NetworkError
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        failure_handler: Optional[SessionFailureHandler] = None,
        default_timeout: Optional[httpx.Timeout] = None,
    ):
        self._http = http_client
        self.base_url = base_url.rstrip("/")
        self._failure_handler = failure_handler
        self._default_timeout = default_timeout
        self._request_steps: List[RequestStep] = []
        self._response_steps: List[ResponseStep] = []

    def add_request_step(self, step: RequestStep) -> None:
        self._request_steps.append(step)

    def add_response_step(self, step: ResponseStep) -> None:
        self._response_steps.append(step)

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def _prepare(self, spec: RequestSpec) -> RequestSpec:
        for step in self._request_steps:
            spec = step(spec)
        return spec

    async def _transmit(self, spec: RequestSpec) -> httpx.Response:
        url = self.url_for(spec.path)
        timeout = spec.timeout or self._default_timeout
        kwargs: Dict[str, Any] = {
            "params": spec.params,
            "headers": spec.headers,
        }
        if spec.json is not None:
            kwargs["json"] = spec.json
        if spec.data is not None:
            kwargs["data"] = spec.data
        if spec.files is not None:
            kwargs["files"] = spec.files
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            return await self._http.request(spec.method, url, **kwargs)
        except (httpx.TimeoutException, httpx.RequestError) as e:
            error = NetworkError(
                f"{spec.method} {spec.path} failed: {e!r}", request_id=spec.request_id
            )
            log_failure(error, spec.method, url, spec.attempt, spec.credential)
            raise error from e

    async def send(self, spec: RequestSpec) -> httpx.Response:
        prepared = self._prepare(spec)
        lib_logger.debug(f"-> {prepared.describe()}")
        response = await self._transmit(prepared)

        for step in self._response_steps:
            response = await step(prepared, response)

        return self._classify(prepared, response)

    def _classify(self, spec: RequestSpec, response: httpx.Response) -> httpx.Response:
        status = response.status_code
        if response.is_success:
            lib_logger.debug(f"<- {status} {spec.describe()}")
            return response

        detail = extract_error_detail(response)
        url = self.url_for(spec.path)

        if status == 401:
            error: ApiError = SessionExpiredError(
                f"{spec.method} {spec.path} unauthorized after {spec.attempt} replay(s)",
                detail=detail,
                response=response,
                request_id=spec.request_id,
            )
            log_failure(error, spec.method, url, spec.attempt, spec.credential)
            if self._failure_handler is not None:
                self._failure_handler.on_session_expired(
                    f"{spec.method} {spec.path} still unauthorized"
                )
            raise error

        message = f"{spec.method} {spec.path} failed with HTTP {status}"
        if detail:
            message += f": {format_detail(detail)}"
        error_cls = ServerError if status >= 400 else ApiError
        error = error_cls(
            message,
            status_code=status,
            detail=detail,
            response=response,
            request_id=spec.request_id,
        )
        log_failure(error, spec.method, url, spec.attempt, spec.credential)
        raise error

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Build a RequestSpec and send it.

        Accepts params, json, data, files, headers, timeout.
        """
        return await self.send(RequestSpec(method=method, path=path, **kwargs))

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)
