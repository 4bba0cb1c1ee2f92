from pathlib import Path

import pytest

from ero_automation.config import Config, ConfigError, REQUIRED_ENV_KEYS


def _env(**overrides: str) -> dict[str, str]:
    env = {
        "API_URL": "https://api.example.com/",
        "SITES_CONFIG": "config/sites.json",
        "ACCOUNTS_CONFIG": "config/accounts.json",
    }
    env.update(overrides)
    return env


def test_load_from_env_applies_defaults() -> None:
    config = Config.load_from_env(_env())

    assert config.api_url == "https://api.example.com"
    assert config.sites_config == Path("config/sites.json")
    assert config.update_interval_minutes == 15
    assert config.countdown_seconds == 180
    assert config.fetch_max_attempts == 3
    assert config.fetch_retry_delay_seconds == 10
    assert config.action_timeout_ms == 10_000
    assert (config.action_delay_min_ms, config.action_delay_max_ms) == (1000, 3000)
    assert config.headless is False
    assert config.json_log_file == ""


@pytest.mark.parametrize("missing", REQUIRED_ENV_KEYS)
def test_missing_required_key_raises(missing: str) -> None:
    env = _env()
    env.pop(missing)

    with pytest.raises(ConfigError, match=missing):
        Config.load_from_env(env)


def test_blank_required_key_raises() -> None:
    with pytest.raises(ConfigError, match="cannot be blank"):
        Config.load_from_env(_env(SITES_CONFIG="   "))


def test_overrides_are_parsed() -> None:
    config = Config.load_from_env(
        _env(
            UPDATE_INTERVAL_MINUTES="5",
            FETCH_MAX_ATTEMPTS="4",
            HEADLESS="yes",
            ACTION_DELAY_MIN_MS="0",
            ACTION_DELAY_MAX_MS="0",
            JSON_LOG_FILE="logs/run.jsonl",
        )
    )

    assert config.update_interval_minutes == 5
    assert config.fetch_max_attempts == 4
    assert config.headless is True
    assert config.action_delay_max_ms == 0
    assert config.json_log_file == "logs/run.jsonl"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"FETCH_MAX_ATTEMPTS": "0"}, "FETCH_MAX_ATTEMPTS"),
        ({"UPDATE_INTERVAL_MINUTES": "soon"}, "must be an integer"),
        ({"HEADLESS": "maybe"}, "boolean"),
        ({"API_URL": "ftp://api.example.com"}, "http"),
        ({"ACTION_DELAY_MIN_MS": "500", "ACTION_DELAY_MAX_MS": "100"}, "ACTION_DELAY_MAX_MS"),
    ],
)
def test_invalid_values_raise(overrides: dict[str, str], message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        Config.load_from_env(_env(**overrides))
