# src/placeprep_client/utils/resilient_io.py
"""
Resilient I/O utilities for the client's persisted state.

Provides three helpers:
1. safe_write_json - atomic JSON write (tempfile + move) with optional
   owner-only permissions. Used for the credential namespace file.
2. safe_read_json - tolerant JSON read; missing or corrupt files read as None.
3. safe_remove - delete a file, treating "already gone" as success.

None of these raise on disk errors. They log and report a boolean (or None)
so callers decide whether a failed write is fatal.
"""

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union


def safe_write_json(
    path: Union[str, Path],
    data: Dict[str, Any],
    logger: logging.Logger,
    indent: int = 2,
    secure_permissions: bool = False,
) -> bool:
    """
    Atomically write JSON data to a file.

    The document is written to a temp file in the target directory and moved
    into place, so readers see either the old or the new document, never a
    partial one.

    Args:
        path: File path to write to
        data: JSON-serializable data
        logger: Logger for warnings
        indent: JSON indentation level (default: 2)
        secure_permissions: Set file permissions to 0o600 (default: False)

    Returns:
        True on success, False on failure (never raises)
    """
    path = Path(path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=indent)

        tmp_fd = None
        tmp_path = None
        try:
            tmp_fd, tmp_path = tempfile.mkstemp(
                dir=path.parent, prefix=".tmp_", suffix=".json", text=True
            )
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(content)
                tmp_fd = None

            # Set permissions before the move so the token is never world-readable
            if secure_permissions:
                try:
                    os.chmod(tmp_path, 0o600)
                except (OSError, AttributeError):
                    # Windows may not support chmod
                    pass

            shutil.move(tmp_path, path)
            tmp_path = None
        finally:
            if tmp_fd is not None:
                try:
                    os.close(tmp_fd)
                except OSError:
                    pass
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

        return True

    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"Failed to write JSON to {path}: {e}")
        return False


def safe_read_json(
    path: Union[str, Path], logger: logging.Logger
) -> Optional[Dict[str, Any]]:
    """
    Read a JSON object from a file.

    Returns:
        The decoded dict, or None if the file is missing, unreadable,
        corrupt, or does not hold a JSON object.
    """
    path = Path(path)
    if not path.exists():
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read JSON from {path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path.name}: expected a JSON object")
        return None
    return data


def safe_remove(path: Union[str, Path], logger: logging.Logger) -> bool:
    """
    Remove a file.

    Returns:
        True if the file is gone afterwards (including when it never existed)
    """
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")
        return False
