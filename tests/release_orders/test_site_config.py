import json
from pathlib import Path

import pytest

from ero_automation.automation.actions import Click, Input, ItemAction, LoginAction, Select, Unknown
from ero_automation.automation.popups import DEFAULT_POPUPS
from ero_automation.release_orders.site_config import (
    DEFAULT_LOGOUT_SELECTOR,
    SiteConfigError,
    build_action,
    load_accounts,
    load_site_config,
    parse_accounts,
    parse_site_config,
)


SITES = {
    "sites": [
        {
            "name": "depot-portal",
            "url": "https://depot.example.com/",
            "actions": [
                {"type": "input", "typeAction": "login", "selector": "#user", "value": "data.account.username"},
                {"type": "click", "typeAction": "login", "selector": "#login", "delay": 2000},
                {
                    "type": "click",
                    "typeAction": "roData",
                    "selector": "tr.row",
                    "firstOnly": True,
                    "matchField": {"fieldKey": "releaseOrderNumber", "selector": "td.ro"},
                },
                {"type": "select", "typeAction": "roData", "selector": "#type", "condition": "TYPE != null"},
                {"type": "drag", "typeAction": "roData", "selector": "#x"},
            ],
        },
        {"name": "backup", "url": "https://backup.example.com/", "logout_selector": "#bye"},
    ]
}


def test_parse_site_config_splits_phases_and_builds_variants() -> None:
    site = parse_site_config(SITES)

    assert site.name == "depot-portal"
    assert site.logout_selector == DEFAULT_LOGOUT_SELECTOR
    assert site.popups == DEFAULT_POPUPS
    login, item = site.login_actions, site.item_actions
    assert [type(spec) for spec in login] == [Input, Click]
    assert [type(spec) for spec in item] == [Click, Select, Unknown]
    assert login[1].delay_ms == 2000
    assert item[0].first_only is True
    assert item[0].match_field.field_key == "releaseOrderNumber"
    assert item[1].value == ""
    assert item[1].condition.evaluate({"TYPE": "20GP"}) is True
    assert item[2].raw_kind == "drag"


def test_site_can_be_selected_by_name(tmp_path: Path) -> None:
    path = tmp_path / "sites.json"
    path.write_text(json.dumps(SITES), encoding="utf-8")

    site = load_site_config(path, site_name="backup")

    assert site.url == "https://backup.example.com/"
    assert site.logout_selector == "#bye"
    assert site.actions == ()


def test_build_action_wraps_phase() -> None:
    assert isinstance(build_action({"type": "click", "typeAction": "login", "selector": "#a"}), LoginAction)
    assert isinstance(build_action({"type": "click", "typeAction": "roData", "selector": "#a"}), ItemAction)


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"type": "click", "typeAction": "login"}, "requires a selector"),
        ({"type": "click", "typeAction": "logout", "selector": "#a"}, "unknown typeAction"),
        ({"type": "click", "typeAction": "login", "selector": "#a", "condition": "A =="}, "Invalid condition"),
        ({"type": "click", "typeAction": "login", "selector": "#a", "delay": -5}, "Invalid action entry"),
    ],
)
def test_invalid_actions_are_rejected(raw: dict, message: str) -> None:
    with pytest.raises(SiteConfigError, match=message):
        build_action(raw)


def test_invalid_site_files_raise(tmp_path: Path) -> None:
    broken = tmp_path / "sites.json"
    broken.write_text("{not json", encoding="utf-8")

    with pytest.raises(SiteConfigError, match="Invalid JSON"):
        load_site_config(broken)
    with pytest.raises(SiteConfigError, match="Unable to read"):
        load_site_config(tmp_path / "missing.json")
    with pytest.raises(SiteConfigError):
        parse_site_config({"sites": []})
    with pytest.raises(SiteConfigError, match="not found"):
        parse_site_config(SITES, site_name="nope")


def test_accounts_keep_extra_fields(tmp_path: Path) -> None:
    path = tmp_path / "accounts.json"
    path.write_text(
        json.dumps({"DEPOT1": {"username": "u1", "password": "p1", "branch": "HCM"}, " DEPOT2 ": {}}),
        encoding="utf-8",
    )

    accounts = load_accounts(path)

    assert accounts["DEPOT1"].as_context() == {"username": "u1", "password": "p1", "branch": "HCM"}
    assert accounts["DEPOT2"].username == ""


def test_accounts_must_be_an_object() -> None:
    with pytest.raises(SiteConfigError):
        parse_accounts(["DEPOT1"])
