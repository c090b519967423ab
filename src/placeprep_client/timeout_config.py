# src/placeprep_client/timeout_config.py
"""
Centralized timeout configuration for HTTP requests.

All values can be overridden via environment variables:
    PLACEPREP_TIMEOUT_CONNECT - Connection establishment timeout (default: 10s)
    PLACEPREP_TIMEOUT_READ - Read timeout for regular API calls (default: 30s)
    PLACEPREP_TIMEOUT_WRITE - Request body send timeout (default: 30s)
    PLACEPREP_TIMEOUT_POOL - Connection pool acquisition timeout (default: 30s)
    PLACEPREP_TIMEOUT_UPLOAD_READ - Read timeout for uploads such as resume
        analysis, where the backend does heavy work before answering (default: 120s)
"""

import logging
import os

import httpx

lib_logger = logging.getLogger("placeprep_client")


class TimeoutConfig:
    """
    Centralized timeout configuration for HTTP requests.

    All values can be overridden via environment variables.
    """

    # Default values (in seconds)
    _CONNECT = 10.0
    _READ = 30.0
    _WRITE = 30.0
    _POOL = 30.0
    _UPLOAD_READ = 120.0

    @classmethod
    def _get_env_float(cls, key: str, default: float) -> float:
        """Get a float value from environment variable, or return default."""
        value = os.environ.get(key)
        if value is not None:
            try:
                return float(value)
            except ValueError:
                lib_logger.warning(
                    f"Invalid value for {key}: {value}. Using default: {default}"
                )
        return default

    @classmethod
    def connect(cls) -> float:
        return cls._get_env_float("PLACEPREP_TIMEOUT_CONNECT", cls._CONNECT)

    @classmethod
    def read(cls) -> float:
        return cls._get_env_float("PLACEPREP_TIMEOUT_READ", cls._READ)

    @classmethod
    def write(cls) -> float:
        return cls._get_env_float("PLACEPREP_TIMEOUT_WRITE", cls._WRITE)

    @classmethod
    def pool(cls) -> float:
        return cls._get_env_float("PLACEPREP_TIMEOUT_POOL", cls._POOL)

    @classmethod
    def upload_read(cls) -> float:
        return cls._get_env_float("PLACEPREP_TIMEOUT_UPLOAD_READ", cls._UPLOAD_READ)

    @classmethod
    def default(cls) -> httpx.Timeout:
        """Timeout configuration for regular JSON API calls."""
        return httpx.Timeout(
            connect=cls.connect(),
            read=cls.read(),
            write=cls.write(),
            pool=cls.pool(),
        )

    @classmethod
    def upload(cls) -> httpx.Timeout:
        """
        Timeout configuration for multipart uploads.

        Uses a longer read timeout since the backend parses and scores the
        uploaded document before sending anything back.
        """
        return httpx.Timeout(
            connect=cls.connect(),
            read=cls.upload_read(),
            write=cls.write(),
            pool=cls.pool(),
        )
