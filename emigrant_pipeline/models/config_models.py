from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the emigrant statistics pipeline.

Loaded from YAML by emigrant_pipeline.config.loader; environment variables
(.env) take precedence over the database section when connecting.
"""

__all__ = [
    "MODEL_TYPES",
    "DatabaseConfig",
    "StoreConfig",
    "ForecastSettings",
    "PipelineConfig",
]

MODEL_TYPES = ("lstm", "mlp")


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback used when PG* / DATABASE_URL are not set."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class StoreConfig:
    backend: str = "memory"  # memory / postgres
    table: str = "documents"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


@dataclass(frozen=True)
class ForecastSettings:
    """Hyperparameters of the forecaster.

    Defaults reproduce the dashboard's in-browser model: a 32-unit LSTM,
    dropout 0.2, a 16-unit dense layer, Adam(0.01), 30 epochs, lookback 5.
    With `tune` set, training instead searches the built-in LSTM and MLP
    candidates and keeps the one with the lowest validation RMSE.
    """
    lookback: int = 5
    epochs: int = 30
    batch_size: int = 16
    validation_fraction: float = 0.2
    learning_rate: float = 0.01
    units: int = 32
    recurrent_layers: int = 1
    dropout: float = 0.2
    dense_units: int = 16
    patience: int = 0  # early stopping on val_loss; 0 disables
    min_years: int = 7
    yield_every: int = 5  # epochs between cooperative yields in train_async
    horizon: int = 5
    model_type: str = "lstm"  # lstm / mlp
    tune: bool = False

    def __post_init__(self) -> None:
        if self.lookback < 1:
            raise ValueError("lookback must be >= 1")
        if self.epochs < 1:
            raise ValueError("epochs must be >= 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if not 0.0 < self.validation_fraction < 1.0:
            raise ValueError("validation_fraction must be between 0 and 1 (exclusive)")
        if self.model_type not in MODEL_TYPES:
            raise ValueError(f"model_type must be one of {', '.join(MODEL_TYPES)}")
        if self.recurrent_layers not in (1, 2):
            raise ValueError("recurrent_layers must be 1 or 2")
        if not 0.0 <= self.dropout < 1.0:
            raise ValueError("dropout must be in [0, 1)")
        if self.horizon < 1:
            raise ValueError("horizon must be >= 1")
        if self.yield_every < 1:
            raise ValueError("yield_every must be >= 1")

    @property
    def required_points(self) -> int:
        """Minimum series length accepted for training."""
        return max(self.min_years, self.lookback + 1)


@dataclass(frozen=True)
class PipelineConfig:
    """Root configuration object."""
    store: StoreConfig = field(default_factory=StoreConfig)
    forecast: ForecastSettings = field(default_factory=ForecastSettings)
    artifact_dir: str = "./models"
    logs_dir: str = "./logs"
