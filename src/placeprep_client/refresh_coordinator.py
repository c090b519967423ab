# src/placeprep_client/refresh_coordinator.py
"""
Single-flight credential refresh with request queuing and replay.

Requests rejected with 401 are queued here. Only one refresh call runs at a
time per client, no matter how many requests failed concurrently: every 401
seen while a refresh is in flight joins the same queue instead of starting a
new refresh. Starting several refreshes in parallel would make each one
invalidate the refresh token the others are using (the backend rotates it),
turning a routine expiry into a forced logout.

Once the refresh settles:
- success -> store the new pair, go back to IDLE, replay the queue in FIFO order
- failure -> go back to IDLE, reject the queue with SessionExpiredError and
  hand the session to the SessionFailureHandler once
- session changed meanwhile (login or logout) -> the refreshed pair is
  dropped; the queue replays with the current pair, or fails if there is none
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

import httpx

from .credential_store import CredentialPair, CredentialStore
from .error_handler import (
    SessionExpiredError,
    is_transport_failure,
    mask_credential,
)
from .failure_logger import log_failure
from .session_failure import SessionFailureHandler

lib_logger = logging.getLogger("placeprep_client")

Refresher = Callable[[str], Awaitable[CredentialPair]]


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


def _retrieve_outcome(future: "asyncio.Future[httpx.Response]") -> None:
    if not future.cancelled():
        future.exception()


@dataclass
class PendingRequest:
    """
    A request that failed once with 401 and may be replayed exactly once.

    Attributes:
        execute: Async callable sending the replay and returning its response
        origin_id: Id of the originating request
        sent_with: Access token the failed attempt carried (None if unauthenticated)
    """

    execute: Callable[[], Awaitable[httpx.Response]]
    origin_id: str
    sent_with: Optional[str] = None
    future: Optional["asyncio.Future[httpx.Response]"] = field(default=None, repr=False)

    def resolve(self, response: httpx.Response) -> None:
        if self.future is not None and not self.future.done():
            self.future.set_result(response)

    def reject(self, error: BaseException) -> None:
        if self.future is not None and not self.future.done():
            self.future.set_exception(error)


class RefreshCoordinator:
    """
    Owns the refresh state machine IDLE -> REFRESHING -> IDLE.

    The refresh and every replay run in tasks owned by the coordinator. Callers
    wait on their request's future through asyncio.shield, so a caller that
    gives up does not cancel the refresh other callers depend on, nor its own
    replay (the server-side effect of the call may already be underway).
    """

    def __init__(
        self,
        store: CredentialStore,
        refresher: Refresher,
        failure_handler: SessionFailureHandler,
        terminal_on_transport_error: bool = True,
    ):
        self._store = store
        self._refresher = refresher
        self._failure_handler = failure_handler
        self._terminal_on_transport_error = terminal_on_transport_error

        self._state = RefreshState.IDLE
        self._queue: Deque[PendingRequest] = deque()
        # Guards the state transition and the queue
        self._lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None
        self._replay_tasks: Set[asyncio.Task] = set()

        # Statistics
        self._refresh_count = 0
        self._successful_refreshes = 0
        self._failed_refreshes = 0
        self._replay_count = 0
        self._refresh_started_at: Optional[float] = None

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def refresh_count(self) -> int:
        """Number of refresh calls issued so far."""
        return self._refresh_count

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    async def submit(self, pending: PendingRequest) -> httpx.Response:
        """
        Queue a 401'd request and wait for the outcome of its replay.

        Returns:
            The replay's response

        Raises:
            SessionExpiredError: the refresh failed terminally
            ApiError: whatever the replay raised (including SessionExpiredError
                if the replay was rejected with 401 as well)
        """
        pending.future = asyncio.get_running_loop().create_future()
        # A caller that stopped waiting never reads its outcome
        pending.future.add_done_callback(_retrieve_outcome)

        async with self._lock:
            if self._state is RefreshState.REFRESHING:
                self._queue.append(pending)
                lib_logger.debug(
                    f"Refresh in flight, queued request {pending.origin_id} "
                    f"(position {len(self._queue)})"
                )
            elif self._credential_rotated_since(pending):
                # A refresh finished while this request was on the wire
                lib_logger.debug(
                    f"Credential already rotated, replaying {pending.origin_id} directly"
                )
                self._start_replay(pending)
            else:
                self._queue.append(pending)
                self._state = RefreshState.REFRESHING
                self._refresh_task = asyncio.create_task(self._run_refresh())

        return await asyncio.shield(pending.future)

    def _credential_rotated_since(self, pending: PendingRequest) -> bool:
        current = self._store.get()
        return current is not None and current.access_token != pending.sent_with

    async def _run_refresh(self) -> None:
        self._refresh_started_at = time.time()
        current = self._store.get()

        try:
            if current is None:
                raise SessionExpiredError("No refresh credential available")
            self._refresh_count += 1
            lib_logger.info(
                f"Refreshing credentials (refresh token {mask_credential(current.refresh_token)}), "
                f"{len(self._queue)} request(s) waiting"
            )
            new_pair = await self._refresher(current.refresh_token)
        except Exception as e:
            self._failed_refreshes += 1
            await self._handle_refresh_failure(e, current)
            return

        self._successful_refreshes += 1
        async with self._lock:
            latest = self._store.get()
            # Only the session the refresh started from may be replaced
            if latest == current:
                self._store.set(new_pair)
            self._state = RefreshState.IDLE
            queued = self._drain()

        duration = time.time() - self._refresh_started_at
        if latest != current:
            lib_logger.info(
                f"Credential refresh finished in {duration:.2f}s but the session changed "
                f"meanwhile; discarding refreshed pair"
            )
            self._settle_superseded(queued, latest)
            return

        lib_logger.info(
            f"Credential refresh SUCCESS in {duration:.2f}s, replaying {len(queued)} request(s)"
        )
        for pending in queued:
            self._start_replay(pending)

    def _settle_superseded(
        self, queued: List[PendingRequest], latest: Optional[CredentialPair]
    ) -> None:
        """
        Settle the queue of a refresh whose session was replaced (login) or
        ended (logout) while it was in flight. No teardown is signalled: the
        host changed the session itself.
        """
        if latest is None:
            lib_logger.info(f"Session ended during refresh, failing {len(queued)} request(s)")
            for pending in queued:
                pending.reject(
                    SessionExpiredError(
                        "Logged out during credential refresh", request_id=pending.origin_id
                    )
                )
            return

        lib_logger.info(f"Replaying {len(queued)} request(s) with the current session")
        for pending in queued:
            self._start_replay(pending)

    async def _handle_refresh_failure(
        self, error: Exception, current: Optional[CredentialPair]
    ) -> None:
        async with self._lock:
            latest = self._store.get()
            self._state = RefreshState.IDLE
            queued = self._drain()

        if current is not None and latest != current:
            lib_logger.info(f"Credential refresh failed ({error}) after the session changed")
            self._settle_superseded(queued, latest)
            return

        if is_transport_failure(error) and not self._terminal_on_transport_error:
            lib_logger.warning(
                f"Credential refresh could not complete ({error}); keeping session, "
                f"failing {len(queued)} request(s)"
            )
            log_failure(error, method="POST", url="refresh")
            for pending in queued:
                pending.reject(error)
            return

        reason = f"credential refresh failed: {error}"
        lib_logger.error(
            f"Credential refresh FAILED ({error}); rejecting {len(queued)} request(s)"
        )
        log_failure(error, method="POST", url="refresh")
        self._failure_handler.on_session_expired(reason)
        for pending in queued:
            expired = SessionExpiredError(request_id=pending.origin_id)
            expired.__cause__ = error
            pending.reject(expired)

    def _drain(self) -> List[PendingRequest]:
        queued = list(self._queue)
        self._queue.clear()
        return queued

    def _start_replay(self, pending: PendingRequest) -> None:
        task = asyncio.create_task(self._replay(pending))
        self._replay_tasks.add(task)
        task.add_done_callback(self._replay_tasks.discard)

    async def _replay(self, pending: PendingRequest) -> None:
        self._replay_count += 1
        try:
            response = await pending.execute()
        except Exception as e:
            # Delivered to the waiting caller rather than raised here
            pending.reject(e)
        else:
            pending.resolve(response)

    async def aclose(self) -> None:
        """
        Stop any in-flight refresh and reject queued requests. Used on client
        shutdown; does not signal re-authentication.
        """
        task = self._refresh_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        async with self._lock:
            self._state = RefreshState.IDLE
            queued = self._drain()
        for pending in queued:
            pending.reject(SessionExpiredError("Client closed", request_id=pending.origin_id))

        if self._replay_tasks:
            await asyncio.gather(*self._replay_tasks, return_exceptions=True)

    def get_status(self) -> Dict[str, Any]:
        """Get current coordinator status for debugging/monitoring."""
        return {
            "state": self._state.value,
            "pending_count": len(self._queue),
            "refresh_duration": (time.time() - self._refresh_started_at)
            if self._state is RefreshState.REFRESHING and self._refresh_started_at
            else None,
            "stats": {
                "refreshes": self._refresh_count,
                "successful": self._successful_refreshes,
                "failed": self._failed_refreshes,
                "replays": self._replay_count,
            },
        }
