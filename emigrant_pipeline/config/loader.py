from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import DatabaseConfig, ForecastSettings, PipelineConfig, StoreConfig

"""Config loader.

Responsibilities:
- Load YAML (default config/pipeline.yml)
- Validate against the bundled config_schema.json (unknown keys rejected)
- Apply defaults for optional sections
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/pipeline.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> PipelineConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    _validate_config_schema(data)

    store_raw = data["store"]
    db_raw = store_raw.get("database") or {}
    store = StoreConfig(
        backend=store_raw["backend"],
        table=store_raw.get("table", "documents"),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )

    try:
        forecast = ForecastSettings(**(data.get("forecast") or {}))
    except ValueError as e:
        raise ConfigError(f"invalid forecast settings: {e}") from e

    defaults = PipelineConfig()
    return PipelineConfig(
        store=store,
        forecast=forecast,
        artifact_dir=data.get("artifact_dir", defaults.artifact_dir),
        logs_dir=data.get("logs_dir", defaults.logs_dir),
    )
