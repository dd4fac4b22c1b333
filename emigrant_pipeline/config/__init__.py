"""YAML configuration loading and bundled JSON schemas."""

from .loader import ConfigError, load_config

__all__ = [
    "ConfigError",
    "load_config",
]
