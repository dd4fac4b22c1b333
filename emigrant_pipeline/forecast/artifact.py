from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import ValidationError
from tensorflow import keras

from ..models.processing_result import TrainingReport

"""Trained-model persistence.

An artifact directory holds two files:

- model.keras      keras model (architecture + weights)
- metadata.json    sidecar needed to reuse the model:
                   {lookback, scalerMin, scalerMax, attribute,
                    trainedYears, trainedValues, bestScore}

The sidecar is validated against artifact_metadata_schema.json on load.
The sidecar field set is fixed; whether the model is an LSTM or an MLP is
read from the saved architecture (input rank) rather than recorded there.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ArtifactError",
    "ArtifactMetadata",
    "MODEL_FILENAME",
    "METADATA_FILENAME",
    "METADATA_SCHEMA_PATH",
    "save_artifact",
    "load_artifact",
    "load_metadata",
    "model_type_of",
]

MODEL_FILENAME = "model.keras"
METADATA_FILENAME = "metadata.json"
METADATA_SCHEMA_PATH = Path(__file__).resolve().parent.parent / "config" / "artifact_metadata_schema.json"


class ArtifactError(Exception):
    pass


@dataclass(frozen=True)
class ArtifactMetadata:
    lookback: int
    scaler_min: float
    scaler_max: float
    attribute: str
    trained_years: list[int]
    trained_values: list[float]
    best_score: float

    @classmethod
    def from_report(cls, report: TrainingReport, attribute: str | None = None) -> ArtifactMetadata:
        return cls(
            lookback=report.lookback,
            scaler_min=report.scaler_min,
            scaler_max=report.scaler_max,
            attribute=attribute or report.attribute,
            trained_years=list(report.trained_years),
            trained_values=list(report.trained_values),
            best_score=report.rmse,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lookback": self.lookback,
            "scalerMin": self.scaler_min,
            "scalerMax": self.scaler_max,
            "attribute": self.attribute,
            "trainedYears": self.trained_years,
            "trainedValues": self.trained_values,
            "bestScore": self.best_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArtifactMetadata:
        return cls(
            lookback=int(data["lookback"]),
            scaler_min=float(data["scalerMin"]),
            scaler_max=float(data["scalerMax"]),
            attribute=str(data["attribute"]),
            trained_years=[int(y) for y in data["trainedYears"]],
            trained_values=[float(v) for v in data["trainedValues"]],
            best_score=float(data["bestScore"]),
        )


def _validate_metadata(data: Any) -> None:
    try:
        schema = json.loads(METADATA_SCHEMA_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ArtifactError(f"cannot read metadata schema: {e}") from e
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        raise ArtifactError(f"invalid artifact metadata: {e.message}") from e
    if len(data["trainedYears"]) != len(data["trainedValues"]):
        raise ArtifactError("invalid artifact metadata: trainedYears and trainedValues differ in length")


def save_artifact(directory: Path, model: Any, report: TrainingReport, attribute: str | None = None) -> Path:
    """Write model.keras and metadata.json into `directory` (created if needed)."""
    metadata = ArtifactMetadata.from_report(report, attribute)
    payload = metadata.to_dict()
    _validate_metadata(payload)

    directory.mkdir(parents=True, exist_ok=True)
    model.save(directory / MODEL_FILENAME)
    (directory / METADATA_FILENAME).write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.debug("saved artifact: %s", directory)
    return directory


def load_metadata(directory: Path) -> ArtifactMetadata:
    path = directory / METADATA_FILENAME
    if not path.exists():
        raise ArtifactError(f"metadata not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ArtifactError(f"metadata is not valid JSON: {e}") from e
    _validate_metadata(data)
    return ArtifactMetadata.from_dict(data)


def load_artifact(directory: Path) -> tuple[ArtifactMetadata, Any]:
    """Return (metadata, keras model) from an artifact directory."""
    metadata = load_metadata(directory)
    model_path = directory / MODEL_FILENAME
    if not model_path.exists():
        raise ArtifactError(f"model not found: {model_path}")
    try:
        model = keras.models.load_model(model_path)
    except (OSError, ValueError) as e:
        raise ArtifactError(f"cannot load model: {e}") from e
    return metadata, model


def model_type_of(model: Any) -> str:
    """"mlp" for models fed flat windows, "lstm" for `(lookback, 1)` sequences."""
    return "mlp" if len(model.input_shape) == 2 else "lstm"
