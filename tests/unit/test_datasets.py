from __future__ import annotations

import pytest

from emigrant_pipeline.models.datasets import DatasetKind, to_document


def test_collections_names():
    assert DatasetKind.GENDER.collection == "emigrantsByGender"
    assert DatasetKind.GEOGRAPHIC.collection == "emigrantsByGeography"
    assert DatasetKind.OCCUPATION.collection == "emigrantsByOccupation"
    assert len({k.collection for k in DatasetKind}) == len(DatasetKind)


@pytest.mark.parametrize(
    "kind,record,key",
    [
        (DatasetKind.GENDER, {"year": 2020, "male": 1, "female": 2}, "2020"),
        (DatasetKind.TOTAL, {"year": "1999", "total": 1}, "1999"),
        (DatasetKind.AGE, {"year": 2020, "ageGroup": "15 - 19", "count": 1}, "2020_15 - 19"),
        (DatasetKind.GEOGRAPHIC, {"year": 2020, "country": "United  States", "count": 1}, "2020_United_States"),
        (DatasetKind.OCCUPATION, {"year": 2020, "occupation": " Sales Workers ", "totalOccupation": 1}, "2020_Sales_Workers"),
    ],
)
def test_record_key_is_deterministic(kind, record, key):
    assert kind.record_key(record) == key
    assert kind.record_key(dict(record)) == key


def test_parse_kind():
    assert DatasetKind.parse(" Gender ") is DatasetKind.GENDER
    with pytest.raises(ValueError) as ei:
        DatasetKind.parse("weather")
    assert "expected one of" in str(ei.value)


def test_gender_document_carries_total():
    doc = to_document(DatasetKind.GENDER, {"year": "2020", "male": 3, "female": 4})
    assert doc == {"year": 2020, "male": 3, "female": 4, "total": 7}


def test_category_document_keeps_label_and_defaults_missing_values():
    doc = to_document(DatasetKind.AGE, {"year": 2020, "ageGroup": " 20 - 24 "})
    assert doc == {"year": 2020, "ageGroup": "20 - 24", "count": 0}


def test_document_rejects_record_without_category():
    with pytest.raises(KeyError):
        to_document(DatasetKind.GEOGRAPHIC, {"year": 2020, "count": 1})
