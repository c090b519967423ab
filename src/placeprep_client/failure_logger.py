import json
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .error_handler import ApiError, classify_error, mask_credential
from .utils.paths import get_logs_dir


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logs."""

    def format(self, record):
        # The message is already a dict, so we just format it as a JSON string
        return json.dumps(record.msg)


# Module-level state for lazy initialization
_failure_logger: Optional[logging.Logger] = None
_configured_logs_dir: Optional[Path] = None


def configure_failure_logger(logs_dir: Optional[Union[Path, str]] = None) -> None:
    """
    Configure the failure logger to use a specific logs directory.

    Call this before first use if you want to override the default location.
    If not called, the logger will use get_logs_dir() on first use.
    """
    global _configured_logs_dir, _failure_logger
    _configured_logs_dir = Path(logs_dir) if logs_dir else None
    # Reset logger so it gets reconfigured on next use
    _failure_logger = None


def _setup_failure_logger(logs_dir: Path) -> logging.Logger:
    """Sets up a dedicated JSON logger writing failures to logs/failures.log."""
    logger = logging.getLogger("placeprep_client.failures")
    logger.setLevel(logging.INFO)
    logger.propagate = False

    # Clear existing handlers to prevent duplicates on re-setup
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    try:
        logs_dir.mkdir(parents=True, exist_ok=True)

        handler = RotatingFileHandler(
            logs_dir / "failures.log",
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=2,
            encoding="utf-8",
        )
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    except OSError as e:
        logging.warning(f"Cannot create failure log file handler: {e}")
        logger.addHandler(logging.NullHandler())

    return logger


def get_failure_logger() -> logging.Logger:
    """Get the failure logger, initializing it lazily if needed."""
    global _failure_logger

    if _failure_logger is None:
        logs_dir = _configured_logs_dir if _configured_logs_dir else get_logs_dir()
        _failure_logger = _setup_failure_logger(logs_dir)

    return _failure_logger


def log_failure(
    error: Exception,
    method: Optional[str] = None,
    url: Optional[str] = None,
    attempt: int = 0,
    credential: Optional[str] = None,
) -> None:
    """
    Write one structured record for a failed call.

    Tokens are masked; the backend detail is kept so a failure seen by a
    user can be matched to the server's answer.
    """
    record = {
        "timestamp": datetime.utcnow().isoformat(),
        "kind": classify_error(error),
        "error_type": type(error).__name__,
        "message": str(error),
        "method": method,
        "url": url,
        "attempt": attempt,
        "credential": mask_credential(credential),
    }
    if isinstance(error, ApiError):
        record["status_code"] = error.status_code
        record["request_id"] = error.request_id
        record["detail"] = error.detail if _is_json_safe(error.detail) else str(error.detail)

    get_failure_logger().error(record)


def log_session_event(event: str, reason: str) -> None:
    """Record a session lifecycle event such as a terminal expiry."""
    get_failure_logger().warning(
        {
            "timestamp": datetime.utcnow().isoformat(),
            "event": event,
            "reason": reason,
        }
    )


def _is_json_safe(value) -> bool:
    try:
        json.dumps(value)
        return True
    except (TypeError, ValueError):
        return False
