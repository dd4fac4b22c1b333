from __future__ import annotations

from pathlib import Path

import pytest

from emigrant_pipeline.config.loader import ConfigError, load_config
from emigrant_pipeline.models.config_models import ForecastSettings


def test_load_config_valid(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.store.backend == "memory"
    assert cfg.store.database.host == "localhost"
    assert cfg.store.database.port == 5432
    assert cfg.forecast.lookback == 3
    assert cfg.forecast.epochs == 2
    # unspecified settings keep their defaults
    assert cfg.forecast.units == 32
    assert cfg.forecast.learning_rate == 0.01
    assert cfg.artifact_dir == "./models"


def test_load_config_minimal_applies_defaults(temp_workdir: Path):
    p = temp_workdir / "config" / "pipeline.yml"
    p.write_text("store:\n  backend: memory\n", encoding="utf-8")
    cfg = load_config(p)
    assert cfg.forecast == ForecastSettings()
    assert cfg.store.table == "documents"
    assert cfg.logs_dir == "./logs"


def test_load_config_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError) as ei:
        load_config(temp_workdir / "config" / "nope.yml")
    assert "config file not found" in str(ei.value)


def test_load_config_invalid_yaml(temp_workdir: Path):
    p = temp_workdir / "config" / "pipeline.yml"
    p.write_text("store: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError) as ei:
        load_config(p)
    assert "invalid yaml" in str(ei.value)


def test_load_config_root_must_be_mapping(temp_workdir: Path):
    p = temp_workdir / "config" / "pipeline.yml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(p)


@pytest.mark.parametrize(
    "text",
    [
        "forecast:\n  epochs: 3\n",  # store missing
        "store:\n  backend: firestore\n",
        "store:\n  backend: memory\n  extra: 1\n",
        "store:\n  backend: memory\nforecast:\n  epochs: 0\n",
        "store:\n  backend: memory\nforecast:\n  recurrent_layers: 3\n",
        "store:\n  backend: memory\nforecast:\n  validation_fraction: 1.0\n",
        "store:\n  backend: memory\n  table: \"bad-name\"\n",
    ],
)
def test_load_config_schema_violations(temp_workdir: Path, text: str):
    p = temp_workdir / "config" / "pipeline.yml"
    p.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError) as ei:
        load_config(p)
    assert "config validation failed" in str(ei.value)


def test_forecast_settings_validation():
    with pytest.raises(ValueError):
        ForecastSettings(dropout=1.0)
    with pytest.raises(ValueError):
        ForecastSettings(horizon=0)
    assert ForecastSettings(lookback=8, min_years=7).required_points == 9
    assert ForecastSettings().required_points == 7
