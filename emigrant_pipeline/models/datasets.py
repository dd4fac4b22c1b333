from __future__ import annotations

import re
from enum import Enum
from typing import Any

"""Dataset kinds and their storage conventions.

Each uploaded CSV belongs to exactly one DatasetKind. The kind decides which
reshaper runs, which store collection receives the records, and how the
deterministic document key is built from a record:

    gender / education / total   -> "{year}"
    age                          -> "{year}_{ageGroup}"
    geographic                   -> "{year}_{country}"     (whitespace -> _)
    occupation                   -> "{year}_{occupation}"  (whitespace -> _)
"""

__all__ = [
    "DatasetKind",
    "NormalizedRecord",
    "to_document",
]

# A narrow record: {"year": int, ...fields}
NormalizedRecord = dict[str, Any]

_WS = re.compile(r"\s+")


class DatasetKind(Enum):
    """Logical datasets accepted by the uploader."""
    GENDER = "gender"
    EDUCATION = "education"
    AGE = "age"
    GEOGRAPHIC = "geographic"
    TOTAL = "total"
    OCCUPATION = "occupation"

    @property
    def collection(self) -> str:
        return _COLLECTIONS[self]

    @property
    def category_field(self) -> str | None:
        """Name of the category field that is part of the key (None for year-keyed kinds)."""
        return _CATEGORY_FIELDS.get(self)

    @property
    def value_fields(self) -> tuple[str, ...]:
        return _VALUE_FIELDS[self]

    def record_key(self, record: NormalizedRecord) -> str:
        year = int(record["year"])
        field = self.category_field
        if field is None:
            return str(year)
        label = str(record[field]).strip()
        if self in (DatasetKind.GEOGRAPHIC, DatasetKind.OCCUPATION):
            label = _WS.sub("_", label)
        return f"{year}_{label}"

    @classmethod
    def parse(cls, value: str) -> DatasetKind:
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(k.value for k in cls)
            raise ValueError(f"unknown dataset kind '{value}' (expected one of: {choices})") from None


_COLLECTIONS = {
    DatasetKind.GENDER: "emigrantsByGender",
    DatasetKind.EDUCATION: "emigrantsByEducation",
    DatasetKind.AGE: "emigrantsByAge",
    DatasetKind.GEOGRAPHIC: "emigrantsByGeography",
    DatasetKind.TOTAL: "emigrantsByTotal",
    DatasetKind.OCCUPATION: "emigrantsByOccupation",
}

_CATEGORY_FIELDS = {
    DatasetKind.AGE: "ageGroup",
    DatasetKind.GEOGRAPHIC: "country",
    DatasetKind.OCCUPATION: "occupation",
}

_VALUE_FIELDS = {
    DatasetKind.GENDER: ("male", "female", "total"),
    DatasetKind.EDUCATION: ("elementary", "highSchool", "college", "postgraduate"),
    DatasetKind.AGE: ("count",),
    DatasetKind.GEOGRAPHIC: ("count",),
    DatasetKind.TOTAL: ("total",),
    DatasetKind.OCCUPATION: (
        "totalOccupation",
        "totalEducation",
        "elementary",
        "highSchool",
        "college",
        "postgraduate",
    ),
}


def to_document(kind: DatasetKind, record: NormalizedRecord) -> NormalizedRecord:
    """Return the document body stored for `record`.

    Numeric fields are coerced to int (missing -> 0). Gender documents also
    carry the derived `total = male + female`.
    """
    doc: NormalizedRecord = {"year": int(record["year"])}
    category = kind.category_field
    if category is not None:
        doc[category] = str(record[category]).strip()
    for field in kind.value_fields:
        if kind is DatasetKind.GENDER and field == "total":
            continue
        doc[field] = int(record.get(field) or 0)
    if kind is DatasetKind.GENDER:
        doc["total"] = doc["male"] + doc["female"]
    return doc
