from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

import emigrant_pipeline.config as config_pkg

"""Model sidecar contract: exactly the seven fields a separate consumer reloads by name."""

SIDECAR_FIELDS = {"lookback", "scalerMin", "scalerMax", "attribute", "trainedYears", "trainedValues", "bestScore"}


@pytest.fixture()
def schema() -> dict:
    path = Path(config_pkg.__file__).with_name("artifact_metadata_schema.json")
    return json.loads(path.read_text(encoding="utf-8"))


def test_schema_requires_exact_field_set(schema):
    assert set(schema["required"]) == SIDECAR_FIELDS
    assert set(schema["properties"]) == SIDECAR_FIELDS
    assert schema["additionalProperties"] is False


def test_metadata_to_dict_matches_contract(schema):
    pytest.importorskip("tensorflow")
    from emigrant_pipeline.forecast.artifact import ArtifactMetadata

    metadata = ArtifactMetadata(
        lookback=5,
        scaler_min=1.0,
        scaler_max=9.0,
        attribute="total",
        trained_years=[2000, 2001],
        trained_values=[1.0, 9.0],
        best_score=0.1,
    )
    data = metadata.to_dict()
    assert set(data) == SIDECAR_FIELDS
    jsonschema.validate(data, schema)
    assert ArtifactMetadata.from_dict(json.loads(json.dumps(data))) == metadata
