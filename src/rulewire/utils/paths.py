"""Dot-path lookup into JSON-like records."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_MISSING = object()


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Resolve ``path`` (e.g. ``"order.items.0.sku"``) against ``data``.

    A key that literally contains dots (``{"order.total": 5}``) wins over
    traversal. Sequence segments must be integer indexes. Anything missing
    along the way yields ``default`` rather than raising.
    """
    if path == "" or path is None:
        return data

    if isinstance(data, Mapping) and path in data:
        return data[path]

    current = data
    for segment in str(path).split("."):
        current = _step(current, segment)
        if current is _MISSING:
            return default
    return current


def has_path(data: Any, path: str) -> bool:
    """Return True if ``path`` resolves to a present (possibly null) value."""
    return get_path(data, path, _MISSING) is not _MISSING


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(segment, _MISSING)
    if isinstance(current, Sequence) and not isinstance(current, str | bytes):
        try:
            index = int(segment)
        except ValueError:
            return _MISSING
        if 0 <= index < len(current):
            return current[index]
    return _MISSING
