# src/placeprep_client/config.py
"""
Client configuration resolved from environment variables.

    PLACEPREP_BACKEND_URL - Backend origin. Defaults depend on PLACEPREP_ENV:
        "production" -> https://placeprep-backend.onrender.com
        anything else -> http://localhost:8000
    PLACEPREP_STORAGE_DIR - Directory holding persisted credentials
    PLACEPREP_STORAGE_NAMESPACE - Storage namespace (default: placeprep)
    PLACEPREP_LOGIN_REDIRECT - Login entry point signalled on session expiry
    PLACEPREP_TERMINAL_ON_REFRESH_NETWORK_ERROR - Treat a refresh call that
        could not complete (network error, 5xx) as a terminal session failure
        (default: true)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

lib_logger = logging.getLogger("placeprep_client")

DEFAULT_DEV_BACKEND_URL = "http://localhost:8000"
DEFAULT_PROD_BACKEND_URL = "https://placeprep-backend.onrender.com"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _get_env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if value is None or value.strip() == "":
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    lib_logger.warning(f"Invalid value for {key}: {value}. Using default: {default}")
    return default


@dataclass
class ClientConfig:
    backend_url: str = DEFAULT_DEV_BACKEND_URL
    api_prefix: str = "/api"
    refresh_path: str = "/auth/refresh"
    login_path: str = "/auth/login"
    register_path: str = "/auth/register"
    login_redirect: str = "/login"
    storage_dir: Optional[Union[Path, str]] = None
    storage_namespace: str = "placeprep"
    terminal_on_refresh_transport_error: bool = True

    def __post_init__(self):
        self.backend_url = self.backend_url.rstrip("/")
        if self.api_prefix and not self.api_prefix.startswith("/"):
            self.api_prefix = "/" + self.api_prefix
        self.api_prefix = self.api_prefix.rstrip("/")

    @property
    def api_url(self) -> str:
        """Base URL every API path is resolved against, e.g. http://localhost:8000/api"""
        return f"{self.backend_url}{self.api_prefix}"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """
        Build a configuration from environment variables.

        Args:
            env: Mapping to read from (defaults to os.environ)
        """
        env = os.environ if env is None else env

        backend_url = env.get("PLACEPREP_BACKEND_URL")
        if not backend_url:
            if env.get("PLACEPREP_ENV", "").lower() == "production":
                backend_url = DEFAULT_PROD_BACKEND_URL
            else:
                backend_url = DEFAULT_DEV_BACKEND_URL

        return cls(
            backend_url=backend_url,
            login_redirect=env.get("PLACEPREP_LOGIN_REDIRECT") or "/login",
            storage_dir=env.get("PLACEPREP_STORAGE_DIR") or None,
            storage_namespace=env.get("PLACEPREP_STORAGE_NAMESPACE") or "placeprep",
            terminal_on_refresh_transport_error=_get_env_bool(
                env, "PLACEPREP_TERMINAL_ON_REFRESH_NETWORK_ERROR", True
            ),
        )
