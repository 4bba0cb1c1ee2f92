from __future__ import annotations

__all__ = [
    "ActionError",
    "ConditionSyntaxError",
    "SurfaceClosedError",
    "SURFACE_CLOSED_MARKERS",
    "is_surface_closed_error",
]

SURFACE_CLOSED_MARKERS = (
    "Target page, context or browser has been closed",
    "Target closed",
    "Browser has been closed",
    "Browser closed",
    "Context closed",
)


class ActionError(RuntimeError):
    """Raised when a declarative action cannot be carried out."""

    def __init__(self, kind: str, selector: str, message: str) -> None:
        super().__init__(f"{kind} on {selector!r} failed: {message}")
        self.kind = kind
        self.selector = selector
        self.reason = message


class SurfaceClosedError(RuntimeError):
    """The page, context or browser under an operation has been closed."""


class ConditionSyntaxError(ValueError):
    """Raised when an action condition does not fit the condition grammar."""


def is_surface_closed_error(exc: BaseException) -> bool:
    if isinstance(exc, SurfaceClosedError):
        return True
    message = str(exc)
    return any(marker in message for marker in SURFACE_CLOSED_MARKERS)
