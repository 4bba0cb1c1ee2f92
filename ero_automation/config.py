"""
CONFIG.PY — SINGLE SOURCE OF TRUTH

This module is the ONLY place allowed to read environment variables.

Required variables have no defaults; if any is missing or invalid the process
fails at startup with ConfigError. Tunables fall back to the documented
defaults below.

Config is loaded ONCE by the entrypoint and passed down explicitly:

    from ero_automation.config import Config

    config = Config.load_from_env()

Do not access os.getenv directly from any other module.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parents[1]

# OS env overrides values from .env
load_dotenv(PROJECT_ROOT / ".env")

if os.getenv("DEBUG_CONFIG") == "1":
    print("[CONFIG] Loaded .env from:", PROJECT_ROOT / ".env")


logger = logging.getLogger(__name__)

REQUIRED_ENV_KEYS = [
    "API_URL",
    "SITES_CONFIG",
    "ACCOUNTS_CONFIG",
]

OPTIONAL_ENV_DEFAULTS: Dict[str, str] = {
    "API_REQ_ID": "Get_GateOut_CMA_RELEASE",
    "API_APP_VERSION": "2023",
    "UPDATE_INTERVAL_MINUTES": "15",
    "COUNTDOWN_SECONDS": "180",
    "FETCH_MAX_ATTEMPTS": "3",
    "FETCH_RETRY_DELAY_SECONDS": "10",
    "ACTION_TIMEOUT_MS": "10000",
    "ACTION_DELAY_MIN_MS": "1000",
    "ACTION_DELAY_MAX_MS": "3000",
    "HEADLESS": "false",
    "DATA_DIR": str(PROJECT_ROOT / "data"),
    "RESULTS_DIR": str(PROJECT_ROOT / "results"),
    "JSON_LOG_FILE": "",
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _require_env(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if value is None:
        message = f"Missing required environment variable: {key}"
        logger.error(message)
        raise ConfigError(message)
    stripped = value.strip()
    if not stripped:
        message = f"Environment variable {key} cannot be blank"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _optional_env(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if value is None or not value.strip():
        return OPTIONAL_ENV_DEFAULTS[key]
    return value.strip()


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigError(message)


def _parse_int(value: str, *, key: str, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed < minimum:
        message = f"Config key {key} must be >= {minimum}; got {parsed}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _clean_url(value: str, *, key: str) -> str:
    stripped = value.strip().rstrip("/")
    if not stripped.startswith(("http://", "https://")):
        message = f"Config key {key} must be an http(s) URL; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return stripped


@dataclass(slots=True, frozen=True)
class Config:
    api_url: str
    api_req_id: str
    api_app_version: str
    sites_config: Path
    accounts_config: Path
    data_dir: Path
    results_dir: Path
    json_log_file: str

    update_interval_minutes: int
    countdown_seconds: int
    fetch_max_attempts: int
    fetch_retry_delay_seconds: int
    action_timeout_ms: int
    action_delay_min_ms: int
    action_delay_max_ms: int
    headless: bool

    @classmethod
    def load_from_env(cls, env: Mapping[str, str] | None = None) -> Config:
        source = os.environ if env is None else env
        required = {key: _require_env(source, key) for key in REQUIRED_ENV_KEYS}
        optional = {key: _optional_env(source, key) for key in OPTIONAL_ENV_DEFAULTS}

        delay_min = _parse_int(optional["ACTION_DELAY_MIN_MS"], key="ACTION_DELAY_MIN_MS")
        delay_max = _parse_int(optional["ACTION_DELAY_MAX_MS"], key="ACTION_DELAY_MAX_MS")
        if delay_max < delay_min:
            message = "ACTION_DELAY_MAX_MS must not be lower than ACTION_DELAY_MIN_MS"
            logger.error(message)
            raise ConfigError(message)

        return cls(
            api_url=_clean_url(required["API_URL"], key="API_URL"),
            api_req_id=optional["API_REQ_ID"],
            api_app_version=optional["API_APP_VERSION"],
            sites_config=Path(required["SITES_CONFIG"]).expanduser(),
            accounts_config=Path(required["ACCOUNTS_CONFIG"]).expanduser(),
            data_dir=Path(optional["DATA_DIR"]).expanduser(),
            results_dir=Path(optional["RESULTS_DIR"]).expanduser(),
            json_log_file=optional["JSON_LOG_FILE"],
            update_interval_minutes=_parse_int(
                optional["UPDATE_INTERVAL_MINUTES"], key="UPDATE_INTERVAL_MINUTES", minimum=1
            ),
            countdown_seconds=_parse_int(
                optional["COUNTDOWN_SECONDS"], key="COUNTDOWN_SECONDS", minimum=1
            ),
            fetch_max_attempts=_parse_int(
                optional["FETCH_MAX_ATTEMPTS"], key="FETCH_MAX_ATTEMPTS", minimum=1
            ),
            fetch_retry_delay_seconds=_parse_int(
                optional["FETCH_RETRY_DELAY_SECONDS"], key="FETCH_RETRY_DELAY_SECONDS"
            ),
            action_timeout_ms=_parse_int(
                optional["ACTION_TIMEOUT_MS"], key="ACTION_TIMEOUT_MS", minimum=1
            ),
            action_delay_min_ms=delay_min,
            action_delay_max_ms=delay_max,
            headless=_parse_bool(optional["HEADLESS"], key="HEADLESS"),
        )
