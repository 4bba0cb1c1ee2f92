"""Shared services for the ERO automation modules."""

from typing import Any

__all__ = [
    "JsonLogger",
    "get_logger",
    "log_event",
    "new_run_id",
    "timed_event",
]


def __getattr__(name: str) -> Any:
    if name in __all__:
        from . import json_logger as _json_logger

        return getattr(_json_logger, name)
    raise AttributeError(name)
