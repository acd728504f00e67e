"""Configuration loading (YAML + JSON schema)."""

from .loader import ConfigError, ImportConfig, load_config

__all__ = [
    "ConfigError",
    "ImportConfig",
    "load_config",
]
