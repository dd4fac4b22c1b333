from __future__ import annotations

import dataclasses

import pytest

from emigrant_pipeline.models.datasets import DatasetKind
from emigrant_pipeline.services.dashboard_state import (
    EDUCATION_PART,
    OCCUPATION_PART,
    DashboardState,
)
from emigrant_pipeline.tabular.reshape import NO_VALID_DATA_MESSAGE

TOTALS = [{"year": 2000, "total": 1}, {"year": 2001, "total": 2}]
OCCUPATION = [{"year": 2019, "occupation": "Professional", "count": 10}]
EDUCATION = [{"year": 2019, "elementary": 1, "highSchool": 2, "college": 3, "postgraduate": 4}]


def test_transitions_return_new_states():
    start = DashboardState()
    parsed = start.file_parsed(DatasetKind.TOTAL, TOTALS)
    assert parsed is not start
    assert start.preview is None
    assert parsed.selected_kind is DatasetKind.TOTAL
    assert parsed.preview == tuple(TOTALS)
    assert parsed.can_confirm
    with pytest.raises(dataclasses.FrozenInstanceError):
        parsed.parse_error = "x"  # type: ignore[misc]


def test_preview_is_decoupled_from_caller_records():
    records = [{"year": 2000, "total": 1}]
    state = DashboardState().file_parsed(DatasetKind.TOTAL, records)
    records[0]["total"] = 99
    assert state.preview[0]["total"] == 1


def test_empty_parse_sets_message():
    state = DashboardState().file_parsed(DatasetKind.AGE, [])
    assert state.preview is None
    assert state.parse_error == NO_VALID_DATA_MESSAGE
    assert not state.can_confirm


def test_parse_failed_clears_preview():
    state = DashboardState().file_parsed(DatasetKind.TOTAL, TOTALS).parse_failed("Error parsing CSV: bad")
    assert state.preview is None
    assert state.parse_error == "Error parsing CSV: bad"


def test_occupation_requires_two_parts_in_any_order():
    first = DashboardState().occupation_part_parsed(OCCUPATION_PART, OCCUPATION)
    assert first.preview is None
    assert first.parse_error == (
        "Occupation data uploaded. Please also upload Education data for the occupation chart."
    )
    both = first.occupation_part_parsed(EDUCATION_PART, EDUCATION)
    assert both.parse_error is None
    assert both.selected_kind is DatasetKind.OCCUPATION
    assert both.preview[0]["totalEducation"] == 10
    assert both.preview[0]["totalOccupation"] == 10

    reverse = DashboardState().occupation_part_parsed(EDUCATION_PART, EDUCATION)
    assert reverse.parse_error.startswith("Education data uploaded. Please also upload Occupation data")
    assert reverse.occupation_part_parsed(OCCUPATION_PART, OCCUPATION).preview == both.preview


def test_occupation_parts_without_common_year():
    state = (
        DashboardState()
        .occupation_part_parsed(OCCUPATION_PART, OCCUPATION)
        .occupation_part_parsed(EDUCATION_PART, [dict(EDUCATION[0], year=2000)])
    )
    assert state.preview is None
    assert state.parse_error == NO_VALID_DATA_MESSAGE


def test_occupation_kind_cannot_use_single_file_transition():
    with pytest.raises(ValueError):
        DashboardState().file_parsed(DatasetKind.OCCUPATION, OCCUPATION)
    with pytest.raises(ValueError):
        DashboardState().occupation_part_parsed("salary", OCCUPATION)


def test_confirm_moves_preview_and_resets_upload():
    state = DashboardState().file_parsed(DatasetKind.TOTAL, TOTALS).confirm()
    assert state.preview is None
    assert state.parse_error is None
    assert state.confirmed[DatasetKind.TOTAL] == tuple(TOTALS)

    replaced = state.file_parsed(DatasetKind.TOTAL, TOTALS[:1]).confirm()
    assert replaced.confirmed[DatasetKind.TOTAL] == tuple(TOTALS[:1])
    assert state.confirmed[DatasetKind.TOTAL] == tuple(TOTALS)


def test_confirm_without_preview_is_a_no_op():
    state = DashboardState()
    assert state.confirm() is state


def test_cancel_drops_pending_parts_but_keeps_confirmed():
    confirmed = DashboardState().file_parsed(DatasetKind.TOTAL, TOTALS).confirm()
    pending = confirmed.occupation_part_parsed(OCCUPATION_PART, OCCUPATION)
    cancelled = pending.cancel()
    assert cancelled.pending_occupation is None
    assert cancelled.parse_error is None
    assert DatasetKind.TOTAL in cancelled.confirmed
