"""Configuration module: Settings, the YAML loader and the typed AppConfig."""

from src.config.app_config import AppConfig
from src.config.loader import load_app_config, load_config
from src.config.settings import Settings

__all__ = ["AppConfig", "Settings", "load_app_config", "load_config"]
