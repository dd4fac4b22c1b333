from __future__ import annotations

import json
from pathlib import Path

import pytest

pytest.importorskip("tensorflow")

from emigrant_pipeline.forecast.artifact import (  # noqa: E402
    METADATA_FILENAME,
    MODEL_FILENAME,
    ArtifactError,
    ArtifactMetadata,
    load_artifact,
    load_metadata,
    save_artifact,
)
from emigrant_pipeline.models.processing_result import EpochLog, TrainingReport  # noqa: E402


class SavingModel:
    def __init__(self) -> None:
        self.saved_to: Path | None = None

    def save(self, path):
        self.saved_to = Path(path)
        Path(path).write_bytes(b"model")


def _report() -> TrainingReport:
    return TrainingReport(
        attribute="total",
        lookback=3,
        scaler_min=100.0,
        scaler_max=190.0,
        trained_years=[2000, 2001, 2002, 2003],
        trained_values=[100.0, 130.0, 160.0, 190.0],
        history=[EpochLog(1, 0.5, 0.4)],
        rmse=0.12,
    )


def test_save_writes_model_and_sidecar(tmp_path: Path):
    model = SavingModel()
    target = save_artifact(tmp_path / "total", model, _report())
    assert model.saved_to == target / MODEL_FILENAME
    data = json.loads((target / METADATA_FILENAME).read_text(encoding="utf-8"))
    assert data == {
        "lookback": 3,
        "scalerMin": 100.0,
        "scalerMax": 190.0,
        "attribute": "total",
        "trainedYears": [2000, 2001, 2002, 2003],
        "trainedValues": [100.0, 130.0, 160.0, 190.0],
        "bestScore": 0.12,
    }


def test_attribute_override(tmp_path: Path):
    save_artifact(tmp_path, SavingModel(), _report(), attribute="male")
    assert load_metadata(tmp_path).attribute == "male"


def test_load_metadata_round_trip(tmp_path: Path):
    save_artifact(tmp_path, SavingModel(), _report())
    assert load_metadata(tmp_path) == ArtifactMetadata.from_report(_report())


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d.pop("bestScore"),
        lambda d: d.update(extra=1),
        lambda d: d.update(lookback=0),
        lambda d: d.update(trainedValues=[1.0]),
        lambda d: d.update(attribute=""),
    ],
)
def test_invalid_sidecar_is_rejected(tmp_path: Path, mutate):
    save_artifact(tmp_path, SavingModel(), _report())
    path = tmp_path / METADATA_FILENAME
    data = json.loads(path.read_text(encoding="utf-8"))
    mutate(data)
    path.write_text(json.dumps(data), encoding="utf-8")
    with pytest.raises(ArtifactError):
        load_metadata(tmp_path)


def test_missing_files(tmp_path: Path):
    with pytest.raises(ArtifactError):
        load_metadata(tmp_path)
    save_artifact(tmp_path, SavingModel(), _report())
    (tmp_path / MODEL_FILENAME).unlink()
    with pytest.raises(ArtifactError) as ei:
        load_artifact(tmp_path)
    assert "model not found" in str(ei.value)


def test_sidecar_not_json(tmp_path: Path):
    (tmp_path / METADATA_FILENAME).write_text("{oops", encoding="utf-8")
    with pytest.raises(ArtifactError):
        load_metadata(tmp_path)
