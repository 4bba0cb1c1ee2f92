"""Declarative browser actions, their interpreter and popup classification."""

from ero_automation.automation.actions import (
    ActionSpec,
    Click,
    Hover,
    Input,
    ItemAction,
    LoginAction,
    MatchField,
    Scroll,
    Select,
    Unknown,
    Wait,
)
from ero_automation.automation.errors import ActionError, ConditionSyntaxError, SurfaceClosedError
from ero_automation.automation.executor import ActionExecutor, PacingPolicy
from ero_automation.automation.popups import PopupClassifier, PopupVerdict

__all__ = [
    "ActionError",
    "ActionExecutor",
    "ActionSpec",
    "Click",
    "ConditionSyntaxError",
    "Hover",
    "Input",
    "ItemAction",
    "LoginAction",
    "MatchField",
    "PacingPolicy",
    "PopupClassifier",
    "PopupVerdict",
    "Scroll",
    "Select",
    "SurfaceClosedError",
    "Unknown",
    "Wait",
]
