# src/placeprep_client/credential_store.py

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .error_handler import mask_credential
from .utils.paths import get_storage_dir
from .utils.resilient_io import safe_read_json, safe_remove, safe_write_json

lib_logger = logging.getLogger("placeprep_client")

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


@dataclass(frozen=True)
class CredentialPair:
    """An access/refresh token pair. Both tokens are opaque."""

    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)

    def __post_init__(self):
        if not self.access_token or not self.refresh_token:
            raise ValueError("A credential pair needs both an access and a refresh token")

    @classmethod
    def from_payload(cls, payload: Any) -> "CredentialPair":
        """
        Build a pair from an auth endpoint body `{access_token, refresh_token}`.

        Raises:
            ValueError: if the body is not an object or either token is missing
        """
        if not isinstance(payload, dict):
            raise ValueError("Credential payload must be a JSON object")
        access = payload.get(ACCESS_TOKEN_KEY)
        refresh = payload.get(REFRESH_TOKEN_KEY)
        if not isinstance(access, str) or not isinstance(refresh, str):
            raise ValueError("Credential payload must contain access_token and refresh_token")
        return cls(access_token=access, refresh_token=refresh)

    def __str__(self):
        return (
            f"CredentialPair(access={mask_credential(self.access_token)}, "
            f"refresh={mask_credential(self.refresh_token)})"
        )


class ClientStorage:
    """
    Namespaced persistent key-value storage, the client-side equivalent of
    browser localStorage.

    Each namespace is one JSON document in the storage directory. Writes replace
    the whole document atomically, so multi-key updates are all-or-nothing on
    disk. The in-memory copy is loaded lazily and guarded by a re-entrant lock.
    It is reloaded whenever the file changed since this instance last read or
    wrote it, so several instances on one namespace (e.g. two clients in one
    process) see each other's refreshes and logouts.
    """

    def __init__(
        self,
        namespace: str = "placeprep",
        storage_dir: Optional[Union[Path, str]] = None,
    ):
        self.namespace = namespace
        self.storage_dir = Path(storage_dir) if storage_dir else get_storage_dir()
        self.path = self.storage_dir / f"{namespace}.json"
        self._lock = threading.RLock()
        self._data: Optional[Dict[str, str]] = None
        self._stamp: Optional[Tuple[int, int, int]] = None

    def _file_stamp(self) -> Optional[Tuple[int, int, int]]:
        # Atomic writes replace the inode, so inode + mtime + size identify a version
        try:
            st = self.path.stat()
        except OSError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _load(self) -> Dict[str, str]:
        stamp = self._file_stamp()
        if self._data is None or stamp != self._stamp:
            raw = safe_read_json(self.path, lib_logger) or {}
            self._data = {k: v for k, v in raw.items() if isinstance(v, str)}
            self._stamp = stamp
        return self._data

    def _write(self, data: Dict[str, str]) -> bool:
        self._data = data
        written = safe_write_json(self.path, data, lib_logger, secure_permissions=True)
        if written:
            self._stamp = self._file_stamp()
        return written

    def _remove(self) -> bool:
        self._data = {}
        removed = safe_remove(self.path, lib_logger)
        if removed:
            self._stamp = None
        return removed

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def items(self) -> Dict[str, str]:
        """Snapshot of every key in the namespace."""
        with self._lock:
            return dict(self._load())

    def set_items(self, values: Mapping[str, str]) -> bool:
        """
        Set several keys in one atomic document write.

        The in-memory copy is always updated. Returns False if the disk write
        failed, in which case the values live only as long as this process
        (or until another instance writes the namespace).
        """
        with self._lock:
            updated = dict(self._load())
            updated.update(values)
            return self._write(updated)

    def set_item(self, key: str, value: str) -> bool:
        return self.set_items({key: value})

    def remove_item(self, key: str) -> bool:
        with self._lock:
            data = self._load()
            if key not in data:
                return True
            updated = {k: v for k, v in data.items() if k != key}
            if not updated:
                return self._remove()
            return self._write(updated)

    def clear(self) -> bool:
        """Remove every key in the namespace."""
        with self._lock:
            return self._remove()


class CredentialStore:
    """
    Holds the current credential pair and persists it across restarts.

    The pair is always read and written as a whole under the storage lock;
    callers never see an access token from one pair with the refresh token
    of another.
    """

    def __init__(self, storage: ClientStorage):
        self.storage = storage

    def get(self) -> Optional[CredentialPair]:
        data = self.storage.items()
        access = data.get(ACCESS_TOKEN_KEY)
        refresh = data.get(REFRESH_TOKEN_KEY)
        if not access or not refresh:
            return None
        return CredentialPair(access_token=access, refresh_token=refresh)

    def set(self, pair: CredentialPair) -> bool:
        """
        Replace the current pair.

        Returns:
            True if the pair was persisted. On False the pair is still current
            for this process (the old refresh token on disk has already been
            consumed by the backend, so keeping the new one in memory is the
            only way to stay logged in).
        """
        persisted = self.storage.set_items(
            {
                ACCESS_TOKEN_KEY: pair.access_token,
                REFRESH_TOKEN_KEY: pair.refresh_token,
            }
        )
        if persisted:
            lib_logger.debug(f"Stored {pair}")
        else:
            lib_logger.error(
                f"Failed to persist credentials to '{self.storage.path.name}'. "
                f"Keeping them in memory for this session."
            )
        return persisted

    def clear(self) -> bool:
        cleared = self.storage.clear()
        lib_logger.debug(f"Cleared storage namespace '{self.storage.namespace}'")
        return cleared

    @property
    def access_token(self) -> Optional[str]:
        pair = self.get()
        return pair.access_token if pair else None
