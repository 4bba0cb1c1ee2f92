"""Static site configuration (``sites.json``) and the depot accounts registry.

``sites.json``::

    {"sites": [{"name": "...", "url": "https://...",
                "logout_selector": ".btn.btn-logout.logout-btn",
                "actions": [{"type": "input", "typeAction": "login",
                             "selector": "#txtUser", "value": "data.account.username"},
                            ...]}]}

``accounts.json`` maps a depot key to its credentials::

    {"DEPOT1": {"username": "...", "password": "..."}}
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ero_automation.automation.actions import (
    KNOWN_KINDS,
    ItemAction,
    LoginAction,
    MatchField,
    PhasedAction,
    Unknown,
    item_actions,
    login_actions,
)
from ero_automation.automation.conditions import parse_condition
from ero_automation.automation.errors import ConditionSyntaxError
from ero_automation.automation.popups import DEFAULT_POPUPS, PopupSpec

__all__ = [
    "Account",
    "SiteConfig",
    "SiteConfigError",
    "build_action",
    "load_accounts",
    "load_site_config",
    "parse_accounts",
    "parse_site_config",
    "DEFAULT_LOGOUT_SELECTOR",
]

DEFAULT_LOGOUT_SELECTOR = ".btn.btn-logout.logout-btn"

LOGIN_PHASES = {"login"}
ITEM_PHASES = {"roData", "rodata", "item"}


class SiteConfigError(ValueError):
    """Raised when the site configuration or accounts registry is invalid."""


class _RawMatchField(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    field_key: str = Field(validation_alias=AliasChoices("fieldKey", "field_key"), min_length=1)
    selector: Optional[str] = None


class _RawAction(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = Field(min_length=1)
    phase: Optional[str] = Field(default=None, validation_alias=AliasChoices("typeAction", "phase"))
    selector: str = ""
    value: Any = None
    condition: Optional[str] = None
    delay: Optional[int] = Field(default=None, ge=0)
    print_url: bool = Field(default=False, validation_alias=AliasChoices("print_url", "printUrl"))
    first_only: bool = Field(default=False, validation_alias=AliasChoices("firstOnly", "first_only"))
    match_field: Optional[_RawMatchField] = Field(
        default=None, validation_alias=AliasChoices("matchField", "match_field")
    )


class _RawPopup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: str
    container: str
    message: str
    close: str


class _RawSite(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    logout_selector: str = DEFAULT_LOGOUT_SELECTOR
    actions: List[_RawAction] = Field(default_factory=list)
    popups: Optional[List[_RawPopup]] = None


class _RawSites(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sites: List[_RawSite] = Field(min_length=1)


class Account(BaseModel):
    """Credentials for one depot; extra fields stay available to actions."""

    model_config = ConfigDict(extra="allow", frozen=True)

    username: str = ""
    password: str = ""

    def as_context(self) -> Dict[str, Any]:
        return self.model_dump()


@dataclass(frozen=True)
class SiteConfig:
    name: str
    url: str
    actions: Tuple[PhasedAction, ...]
    logout_selector: str = DEFAULT_LOGOUT_SELECTOR
    popups: Tuple[PopupSpec, ...] = DEFAULT_POPUPS

    @property
    def login_actions(self):
        return login_actions(self.actions)

    @property
    def item_actions(self):
        return item_actions(self.actions)


def build_action(raw: Mapping[str, Any] | _RawAction) -> PhasedAction:
    """Validate one raw action entry and wrap it in its phase."""

    try:
        parsed = raw if isinstance(raw, _RawAction) else _RawAction.model_validate(raw)
    except ValidationError as exc:
        raise SiteConfigError(f"Invalid action entry: {exc}") from exc

    condition = None
    if parsed.condition is not None and parsed.condition.strip():
        try:
            condition = parse_condition(parsed.condition)
        except ConditionSyntaxError as exc:
            raise SiteConfigError(f"Invalid condition on {parsed.type} {parsed.selector!r}: {exc}") from exc

    common: Dict[str, Any] = {
        "selector": parsed.selector,
        "condition": condition,
        "condition_text": parsed.condition,
        "delay_ms": parsed.delay,
        "print_url": parsed.print_url,
        "first_only": parsed.first_only,
        "match_field": (
            MatchField(field_key=parsed.match_field.field_key, selector=parsed.match_field.selector)
            if parsed.match_field
            else None
        ),
    }
    spec_type = KNOWN_KINDS.get(parsed.type)
    if spec_type is None:
        spec = Unknown(raw_kind=parsed.type, **common)
    else:
        if not parsed.selector.strip():
            raise SiteConfigError(f"Action {parsed.type!r} requires a selector")
        if parsed.type in {"input", "select"}:
            common["value"] = "" if parsed.value is None else parsed.value
        spec = spec_type(**common)

    if parsed.phase in LOGIN_PHASES:
        return LoginAction(spec)
    if parsed.phase in ITEM_PHASES:
        return ItemAction(spec)
    raise SiteConfigError(
        f"Action {parsed.type!r} on {parsed.selector!r} has unknown typeAction {parsed.phase!r}"
    )


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise SiteConfigError(f"Unable to read {path}: {exc}") from exc
    except ValueError as exc:
        raise SiteConfigError(f"Invalid JSON in {path}: {exc}") from exc


def parse_site_config(payload: Any, *, site_name: str | None = None) -> SiteConfig:
    try:
        raw = _RawSites.model_validate(payload)
    except ValidationError as exc:
        raise SiteConfigError(f"Invalid site configuration: {exc}") from exc

    if site_name is None:
        site = raw.sites[0]
    else:
        matches = [candidate for candidate in raw.sites if candidate.name == site_name]
        if not matches:
            raise SiteConfigError(f"Site {site_name!r} not found in configuration")
        site = matches[0]

    popups = DEFAULT_POPUPS
    if site.popups:
        popups = tuple(
            PopupSpec(kind=popup.kind, container=popup.container, message=popup.message, close=popup.close)
            for popup in site.popups
        )

    return SiteConfig(
        name=site.name,
        url=site.url,
        actions=tuple(build_action(action) for action in site.actions),
        logout_selector=site.logout_selector,
        popups=popups,
    )


def load_site_config(path: Path, *, site_name: str | None = None) -> SiteConfig:
    return parse_site_config(_read_json(path), site_name=site_name)


def parse_accounts(payload: Any) -> Dict[str, Account]:
    if not isinstance(payload, Mapping):
        raise SiteConfigError("Accounts registry must be a JSON object keyed by depot")
    accounts: Dict[str, Account] = {}
    for depot, raw in payload.items():
        try:
            accounts[str(depot).strip()] = Account.model_validate(raw)
        except ValidationError as exc:
            raise SiteConfigError(f"Invalid account for depot {depot!r}: {exc}") from exc
    return accounts


def load_accounts(path: Path) -> Dict[str, Account]:
    return parse_accounts(_read_json(path))
