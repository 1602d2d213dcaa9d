"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  -- processing defaults checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set at deploy time

``load_config`` returns the merged plain dict; ``load_app_config`` turns it
into the validated, frozen :class:`~src.config.app_config.AppConfig`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from src.config.app_config import AppConfig
from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def load_config(path: str | None = None, settings: Settings | None = None) -> dict[str, Any]:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file. Defaults to
              ``settings.config_path``.
        settings: Settings instance; a fresh one is created when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    settings = settings or Settings()
    config_path = Path(path or settings.config_path)
    # No file means every section falls back to its model defaults.
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(
            message=f"Top level of {config_path} must be a mapping",
        )

    # LOG_LEVEL from the environment always wins over the YAML value.
    env_overrides = {
        "logging": {
            "log_level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_app_config(path: str | None = None, settings: Settings | None = None) -> AppConfig:
    """Load, merge and validate the processing configuration.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    raw = load_config(path, settings)
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(message=f"Invalid configuration: {problems}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
