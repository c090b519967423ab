# src/placeprep_client/utils/__init__.py

from .paths import get_default_root, get_logs_dir, get_storage_dir
from .resilient_io import safe_read_json, safe_remove, safe_write_json

__all__ = [
    "get_default_root",
    "get_logs_dir",
    "get_storage_dir",
    "safe_read_json",
    "safe_remove",
    "safe_write_json",
]
