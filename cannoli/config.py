"""Shared cannoli configuration utilities.

Centralises reading of ~/.cannoli/configuration.json so that every run
shares one implementation. Example file:

    {
      "llm": {"provider": "openai", "model": "gpt-4", "api_key_env_var": "OPENAI_API_KEY",
              "limit": 5},
      "models": {"gpt-4o": {"prompt_token_price": 0.000005, "completion_token_price": 0.000015}}
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cannoli.errors import ConfigError
from cannoli.runtime.limiter import DEFAULT_LLM_LIMIT
from cannoli.schemas.usage import DEFAULT_MODEL_INFO, Model

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

CANNOLI_CONFIG_FILE = Path.home() / ".cannoli" / "configuration.json"

DEFAULT_MODEL = "gpt-3.5-turbo"


def get_cannoli_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from ~/.cannoli/configuration.json (or ``path``)."""
    config_file = path or CANNOLI_CONFIG_FILE
    if not config_file.exists():
        return {}
    try:
        with open(config_file, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable config file {config_file}: {e}")
        return {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _env_flag(name: str) -> bool | None:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_default_model() -> str:
    """Return the configured default model name."""
    return get_cannoli_config().get("llm", {}).get("model", DEFAULT_MODEL)


def get_llm_limit() -> int:
    """Concurrent model call limit: CANNOLI_LLM_LIMIT, then config, then 10."""
    env_value = os.environ.get("CANNOLI_LLM_LIMIT")
    if env_value:
        try:
            return int(env_value)
        except ValueError as e:
            raise ConfigError(f"CANNOLI_LLM_LIMIT must be an integer, got {env_value!r}") from e
    return int(get_cannoli_config().get("llm", {}).get("limit", DEFAULT_LLM_LIMIT))


def get_is_mock() -> bool:
    """Mock mode from CANNOLI_MOCK; off by default."""
    return bool(_env_flag("CANNOLI_MOCK"))


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    llm = get_cannoli_config().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def load_model_info(config: dict[str, Any] | None = None) -> dict[str, Model]:
    """The built-in price table, extended/overridden by the config's ``models``."""
    config = get_cannoli_config() if config is None else config
    model_info = dict(DEFAULT_MODEL_INFO)
    for name, prices in config.get("models", {}).items():
        try:
            model_info[name] = Model.model_validate({"name": name, **prices})
        except (ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid pricing for model '{name}': {e}") from e
    return model_info


# ---------------------------------------------------------------------------
# RunConfig
# ---------------------------------------------------------------------------


@dataclass
class RunConfig:
    """Run settings loaded from ~/.cannoli/configuration.json and the environment."""

    model: str = field(default_factory=get_default_model)
    llm_limit: int = field(default_factory=get_llm_limit)
    is_mock: bool = field(default_factory=get_is_mock)
    verbose: bool = False
    model_info: dict[str, Model] = field(default_factory=load_model_info)
