"""Safe dotted-path lookup over the nested data context handed to actions."""
from __future__ import annotations

from typing import Any, Mapping, Sequence

__all__ = ["ABSENT", "DATA_PREFIX", "is_absent", "resolve_path", "resolve_value"]

DATA_PREFIX = "data."


class _Absent:
    """Marker for a path that does not exist in the data context."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __str__(self) -> str:
        return ""


ABSENT = _Absent()


def is_absent(value: Any) -> bool:
    return value is ABSENT


def _split_path(path: str) -> list[str]:
    return [part for part in path.strip().split(".") if part]


def resolve_path(context: Any, path: str | Sequence[str]) -> Any:
    """Walk ``path`` through mappings and sequences.

    Missing keys, out-of-range indexes and non-container intermediates all
    yield :data:`ABSENT`; a present ``None`` is returned as ``None``.
    """

    parts = _split_path(path) if isinstance(path, str) else list(path)
    if not parts:
        return ABSENT
    current: Any = context
    for key in parts:
        if isinstance(current, Mapping):
            if key not in current:
                return ABSENT
            current = current[key]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                index = int(key)
            except ValueError:
                return ABSENT
            if index < -len(current) or index >= len(current):
                return ABSENT
            current = current[index]
        else:
            return ABSENT
    return current


def resolve_value(value: Any, context: Mapping[str, Any]) -> Any:
    """Resolve ``data.``-prefixed references; anything else is a literal."""

    if isinstance(value, str) and value.startswith(DATA_PREFIX):
        return resolve_path(context, value[len(DATA_PREFIX):])
    return value
