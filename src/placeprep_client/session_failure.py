# src/placeprep_client/session_failure.py
"""
Terminal session failure handling.

When the session cannot be recovered (the refresh credential was rejected,
there is none, or a replayed request is still unauthorized), the handler
clears every persisted key of the client namespace and signals the host
application to send the user back to its login entry point.

Several queued requests usually fail at the same moment, so the signal is
emitted once per failure episode. The episode stays open until the host
acknowledges it or a new credential pair is established by login.
"""

import logging
import threading
from typing import Callable, List

from .credential_store import CredentialStore
from .failure_logger import log_session_event

lib_logger = logging.getLogger("placeprep_client")

RedirectListener = Callable[[str], None]


class SessionFailureHandler:
    def __init__(self, store: CredentialStore, login_redirect: str = "/login"):
        self._store = store
        self.login_redirect = login_redirect
        self._listeners: List[RedirectListener] = []
        self._lock = threading.Lock()
        self._episode_open = False
        self._signal_count = 0

    def add_listener(self, listener: RedirectListener) -> Callable[[], None]:
        """
        Register a callable receiving the login entry point on session expiry.

        Returns:
            A function that unregisters the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @property
    def episode_open(self) -> bool:
        return self._episode_open

    @property
    def signal_count(self) -> int:
        """Number of redirect signals emitted over the handler's lifetime."""
        return self._signal_count

    def on_session_expired(self, reason: str = "session expired") -> bool:
        """
        Tear the session down and signal re-authentication.

        Returns:
            True if this call performed the teardown, False if the current
            episode had already been handled
        """
        with self._lock:
            if self._episode_open:
                lib_logger.debug(
                    f"Session expiry already being handled, ignoring ({reason})"
                )
                return False
            self._episode_open = True
            self._signal_count += 1

        self._store.clear()
        lib_logger.warning(f"Session expired: {reason}. Redirecting to {self.login_redirect}")
        log_session_event("session_expired", reason)
        self._emit()
        return True

    def acknowledge(self) -> None:
        """Called by the host once it has finished reacting to the redirect."""
        with self._lock:
            self._episode_open = False

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.login_redirect)
            except Exception as e:
                lib_logger.error(f"Session expiry listener {listener!r} failed: {e}")
