"""Shared helpers."""

from .paths import get_path, has_path
from .sanitize import sanitize_log_message

__all__ = ["get_path", "has_path", "sanitize_log_message"]
