"""Centralized config loading — read once at import time.

Values come from forge/config.yaml; a few can be overridden per
deployment through environment variables (or a .env file at the
project root).
"""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

# env var -> (config key, type)
_ENV_OVERRIDES = {
    "FORGE_API_BASE": ("api_base_url", str),
    "FORGE_ORACLE": ("oracle", str),
    "FORGE_ORACLE_PROVIDER": ("oracle_provider", str),
    "FORGE_ORACLE_MODEL": ("oracle_model", str),
    "FORGE_REQUEST_TIMEOUT": ("request_timeout", float),
}

_ORACLES = ("http", "llm")
_PROVIDERS = ("google", "anthropic")


def _load(path: Path) -> dict:
    config = yaml.safe_load(path.read_text()) or {}

    for env_var, (key, cast) in _ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            config[key] = cast(value)

    if config.get("oracle", "http") not in _ORACLES:
        raise ValueError(f"Invalid oracle '{config['oracle']}'. Must be one of: {list(_ORACLES)}")
    if config.get("oracle_provider", "google") not in _PROVIDERS:
        raise ValueError(
            f"Invalid oracle_provider '{config['oracle_provider']}'. "
            f"Must be one of: {list(_PROVIDERS)}"
        )
    return config


_config = _load(CONFIG_PATH)


def get_config() -> dict:
    """Return the loaded config dictionary."""
    return _config


def get_api_token() -> str:
    """Bearer token for the External API, or an empty string when unset."""
    return os.getenv("FORGE_API_TOKEN", "")
