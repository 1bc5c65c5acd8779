"""Engine configuration (LLM connection, pacing, prompt sizes).

get_config() returns defaults, overlaid with environment variables, overlaid
with values stored in {data_dir}/config.json. update_config() applies a
partial update to the stored values and persists it. Values that fail
validation fall back to their defaults with a warning.

Environment (loaded from .env by the app and launcher):
  API_KEY / GEMINI_API_KEY  fallback credential when the player supplies none
  LLM_PROVIDER_URL          backend base URL
  LLM_PROVIDER_FORMAT       "gemini" | "openai"
  LLM_MODEL                 model identifier
  LLM_TIMEOUT               HTTP timeout in seconds
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from infinite_chronicles.llm import DEFAULT_MODEL, DEFAULT_PROVIDER_URL, HttpLLM

logger = logging.getLogger(__name__)

_CONFIG_DEFAULTS: dict[str, Any] = {
    "provider_url": DEFAULT_PROVIDER_URL,
    "provider_format": "gemini",
    "model": DEFAULT_MODEL,
    "timeout": 120.0,
    "language": "English",
    "summary_interval": 5,
    "grand_summary_interval": 20,
    "recent_segments": 2,
    "context_chars": 500,
}

_ENV_KEYS: dict[str, str] = {
    "provider_url": "LLM_PROVIDER_URL",
    "provider_format": "LLM_PROVIDER_FORMAT",
    "model": "LLM_MODEL",
    "timeout": "LLM_TIMEOUT",
}

# Smallest accepted value for each integer setting.
_INT_MINIMUMS: dict[str, int] = {
    "summary_interval": 1,
    "grand_summary_interval": 1,
    "recent_segments": 0,
    "context_chars": 0,
}

_STR_KEYS = ("provider_url", "model", "language")
_PROVIDER_FORMATS = ("gemini", "openai")


class ConfigurationError(RuntimeError):
    """Raised when the engine cannot run with the current configuration."""


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _valid(key: str, value: Any) -> bool:
    if key in _INT_MINIMUMS:
        return isinstance(value, int) and not isinstance(value, bool) and value >= _INT_MINIMUMS[key]
    if key == "timeout":
        return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
    if key == "provider_format":
        return value in _PROVIDER_FORMATS
    if key in _STR_KEYS:
        return isinstance(value, str) and bool(value)
    return True


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``config`` with invalid values reset to defaults."""
    checked = dict(config)
    for key, value in config.items():
        if key in _CONFIG_DEFAULTS and not _valid(key, value):
            logger.warning("Invalid config value %s=%r, using %r", key, value, _CONFIG_DEFAULTS[key])
            checked[key] = _CONFIG_DEFAULTS[key]
    return checked


def _read_stored(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        stored = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable %s: %s", path.name, e)
        return {}
    if not isinstance(stored, dict):
        logger.warning("Ignoring %s: expected a JSON object", path.name)
        return {}
    return stored


def get_config(data_dir: Path | None = None) -> dict[str, Any]:
    """Read config, returning defaults merged with env and stored values."""
    config = dict(_CONFIG_DEFAULTS)
    for key, env_name in _ENV_KEYS.items():
        value = os.getenv(env_name)
        if not value:
            continue
        if key == "timeout":
            try:
                config[key] = float(value)
            except ValueError:
                logger.warning("Ignoring non-numeric %s=%r", env_name, value)
        else:
            config[key] = value
    if data_dir is not None:
        stored = _read_stored(_config_path(data_dir))
        for key in _CONFIG_DEFAULTS:
            if key in stored:
                config[key] = stored[key]
    return validate_config(config)


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge known fields into the stored config and persist. Returns full config."""
    path = _config_path(data_dir)
    stored = _read_stored(path)
    for key, value in fields.items():
        if key not in _CONFIG_DEFAULTS:
            logger.warning("Ignoring unknown config key %r", key)
        elif not _valid(key, value):
            logger.warning("Ignoring invalid config value %s=%r", key, value)
        else:
            stored[key] = value
    data_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(stored, indent=2))
    return get_config(data_dir)


def resolve_api_key(user_key: str | None) -> str:
    """Return the player's key, else the environment key. Fails fast if neither."""
    key = user_key or os.getenv("API_KEY") or os.getenv("GEMINI_API_KEY")
    if not key:
        raise ConfigurationError("No API key configured.")
    return key


def build_llm(config: dict[str, Any], api_key: str) -> HttpLLM:
    return HttpLLM(
        provider_url=config["provider_url"],
        api_key=api_key,
        provider_format=config["provider_format"],
        model=config["model"],
        timeout=float(config["timeout"]),
    )
