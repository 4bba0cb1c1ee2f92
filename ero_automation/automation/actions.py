"""Declarative browser actions.

Every action is one of the operation variants below, wrapped by the phase it
runs in: :class:`LoginAction` runs once per depot after navigation,
:class:`ItemAction` runs once per release order.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .conditions import Predicate

__all__ = [
    "ActionSpec",
    "Click",
    "Hover",
    "Input",
    "ItemAction",
    "LoginAction",
    "MatchField",
    "PhasedAction",
    "Scroll",
    "Select",
    "Unknown",
    "Wait",
    "KNOWN_KINDS",
    "item_actions",
    "login_actions",
]


@dataclass(frozen=True)
class MatchField:
    """Pick, among several matches, the element whose text carries a data value.

    ``field_key`` is a path into the data context; ``selector`` optionally
    narrows the text to a child of each matched element.
    """

    field_key: str
    selector: Optional[str] = None


@dataclass(frozen=True)
class _Target:
    selector: str
    condition: Optional[Predicate] = None
    condition_text: Optional[str] = None
    delay_ms: Optional[int] = None
    print_url: bool = False
    first_only: bool = False
    match_field: Optional[MatchField] = None


@dataclass(frozen=True)
class Click(_Target):
    kind = "click"


@dataclass(frozen=True)
class Input(_Target):
    value: Any = ""
    kind = "input"


@dataclass(frozen=True)
class Select(_Target):
    value: Any = ""
    kind = "select"


@dataclass(frozen=True)
class Wait(_Target):
    kind = "wait"


@dataclass(frozen=True)
class Scroll(_Target):
    kind = "scroll"


@dataclass(frozen=True)
class Hover(_Target):
    kind = "hover"


@dataclass(frozen=True)
class Unknown(_Target):
    raw_kind: str = ""
    kind = "unknown"


ActionSpec = Click | Input | Select | Wait | Scroll | Hover | Unknown

KNOWN_KINDS: dict[str, type] = {
    "click": Click,
    "input": Input,
    "select": Select,
    "wait": Wait,
    "scroll": Scroll,
    "hover": Hover,
}


@dataclass(frozen=True)
class LoginAction:
    spec: ActionSpec
    phase = "login"


@dataclass(frozen=True)
class ItemAction:
    spec: ActionSpec
    phase = "item"


PhasedAction = LoginAction | ItemAction


def login_actions(actions: Tuple[PhasedAction, ...]) -> list[ActionSpec]:
    return [action.spec for action in actions if isinstance(action, LoginAction)]


def item_actions(actions: Tuple[PhasedAction, ...]) -> list[ActionSpec]:
    return [action.spec for action in actions if isinstance(action, ItemAction)]
