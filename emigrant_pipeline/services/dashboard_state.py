from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from ..models.datasets import DatasetKind, NormalizedRecord
from ..tabular.reshape import NO_VALID_DATA_MESSAGE, merge_by_year

"""Upload / preview / confirm workflow as immutable state transitions.

Every transition returns a new DashboardState; nothing is mutated in place.
The occupation dataset needs two uploads (occupation rows and education
rows); the first half is kept as pending until the second arrives, then the
two are merged by year into the preview.
"""

__all__ = [
    "DashboardState",
    "OCCUPATION_PART",
    "EDUCATION_PART",
    "missing_part_message",
]

OCCUPATION_PART = "occupation"
EDUCATION_PART = "education"


def missing_part_message(part: str) -> str:
    """Message shown after one half of the occupation upload."""
    if part == OCCUPATION_PART:
        return "Occupation data uploaded. Please also upload Education data for the occupation chart."
    return "Education data uploaded. Please also upload Occupation data for the occupation chart."


def _frozen(records: Sequence[NormalizedRecord]) -> tuple[NormalizedRecord, ...]:
    return tuple(dict(r) for r in records)


@dataclass(frozen=True)
class DashboardState:
    selected_kind: DatasetKind | None = None
    preview: tuple[NormalizedRecord, ...] | None = None
    parse_error: str | None = None
    pending_occupation: tuple[NormalizedRecord, ...] | None = None
    pending_education: tuple[NormalizedRecord, ...] | None = None
    confirmed: Mapping[DatasetKind, tuple[NormalizedRecord, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def can_confirm(self) -> bool:
        return self.preview is not None

    def file_parsed(self, kind: DatasetKind, records: Sequence[NormalizedRecord]) -> DashboardState:
        """A single-file dataset was reshaped; an empty result becomes a parse error."""
        if kind is DatasetKind.OCCUPATION:
            raise ValueError("occupation uploads come in two parts; use occupation_part_parsed()")
        if not records:
            return replace(self, selected_kind=kind, preview=None, parse_error=NO_VALID_DATA_MESSAGE)
        return replace(self, selected_kind=kind, preview=_frozen(records), parse_error=None)

    def parse_failed(self, message: str) -> DashboardState:
        return replace(self, preview=None, parse_error=message)

    def occupation_part_parsed(self, part: str, records: Sequence[NormalizedRecord]) -> DashboardState:
        """Store one half of the occupation upload; merge once both halves exist."""
        if part == OCCUPATION_PART:
            occupation, education = _frozen(records), self.pending_education
        elif part == EDUCATION_PART:
            occupation, education = self.pending_occupation, _frozen(records)
        else:
            raise ValueError(f"unknown occupation upload part: {part}")

        state = replace(
            self,
            selected_kind=DatasetKind.OCCUPATION,
            pending_occupation=occupation,
            pending_education=education,
        )
        if occupation is None or education is None:
            return replace(state, preview=None, parse_error=missing_part_message(part))

        merged = merge_by_year(occupation, education)
        if not merged:
            return replace(state, preview=None, parse_error=NO_VALID_DATA_MESSAGE)
        return replace(state, preview=_frozen(merged), parse_error=None)

    def confirm(self) -> DashboardState:
        """Move the preview into the confirmed datasets (replacing the same kind) and reset the upload."""
        if self.preview is None or self.selected_kind is None:
            return self
        confirmed = dict(self.confirmed)
        confirmed[self.selected_kind] = self.preview
        return replace(self._reset_upload(), confirmed=MappingProxyType(confirmed))

    def cancel(self) -> DashboardState:
        return self._reset_upload()

    def _reset_upload(self) -> DashboardState:
        return replace(
            self,
            preview=None,
            parse_error=None,
            pending_occupation=None,
            pending_education=None,
        )
