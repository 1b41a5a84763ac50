"""Tests for SerialNumberService: validation, conflict detection and row-level reconciliation."""

from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from saddle_serials.application.serial_service import (
    SerialNumberService,
    normalize_serials,
    validate_serials,
)
from saddle_serials.domain.errors import (
    NotFoundError,
    SerialConflictError,
    SerialSaveConflictError,
    SerialValidationError,
)
from saddle_serials.infrastructure.models import LineItem, SerialNumber


def _rows(session_factory, line_item_id: int) -> list[tuple[int, int, str]]:
    """Helper: ``(row id, unit index, serial)`` for a line item, ordered by unit."""
    with session_factory() as db:
        return [
            (row.id, row.unit_index, row.serial_number)
            for row in db.scalars(
                select(SerialNumber)
                .where(SerialNumber.line_item_id == line_item_id)
                .order_by(SerialNumber.unit_index)
            )
        ]


def _set_quantity(session_factory, line_item_id: int, quantity: int) -> None:
    with session_factory.begin() as db:
        db.get(LineItem, line_item_id).quantity = quantity


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def test_normalize_serials_accepts_sequence_and_mapping() -> None:
    assert normalize_serials(["A", "B"]) == {1: "A", 2: "B"}
    assert normalize_serials({2: "B", 1: "A"}) == {1: "A", 2: "B"}


def test_validate_serials_collects_every_violation() -> None:
    violations = validate_serials({1: "S1", 2: " ", 3: "S1"}, quantity=4)

    assert "Expected 4 serial numbers, got 3" in violations
    assert "All 4 serial numbers must be filled in (unit 2 empty)" in violations
    assert "Duplicate serial number: S1" in violations


def test_validate_serials_rejects_gapped_indices() -> None:
    violations = validate_serials({1: "A", 3: "C"}, quantity=2)

    assert violations == ["Unit indices must run from 1 to 2"]


def test_validate_serials_trims_before_comparing() -> None:
    assert validate_serials({1: "S1", 2: " S1 "}, quantity=2) == ["Duplicate serial number: S1"]
    assert validate_serials({1: "S1", 2: "S2"}, quantity=2) == []


# ---------------------------------------------------------------------------
# save_serial_numbers
# ---------------------------------------------------------------------------


def test_first_save_creates_one_row_per_unit(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=3)

    result = SerialNumberService(session_factory).save_serial_numbers(line_item_id, ["A", "B", "C"])

    assert (result.created, result.updated, result.deleted) == (3, 0, 0)
    assert [(index, serial) for _, index, serial in _rows(session_factory, line_item_id)] == [
        (1, "A"),
        (2, "B"),
        (3, "C"),
    ]


def test_values_are_trimmed_before_storing(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=1)

    SerialNumberService(session_factory).save_serial_numbers(line_item_id, ["  SN-001 "])

    assert _rows(session_factory, line_item_id)[0][2] == "SN-001"


def test_resubmitting_same_values_writes_nothing(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=3)
    service = SerialNumberService(session_factory)
    service.save_serial_numbers(line_item_id, ["A", "B", "C"])
    before = _rows(session_factory, line_item_id)

    result = service.save_serial_numbers(line_item_id, ["A", "B", "C"])

    assert result.writes == 0
    assert result.unchanged == 3
    assert _rows(session_factory, line_item_id) == before


def test_changing_one_unit_updates_only_that_row(session_factory, make_line_item) -> None:
    """Untouched units keep their row identity and timestamps."""
    line_item_id = make_line_item(quantity=3)
    service = SerialNumberService(session_factory)
    service.save_serial_numbers(line_item_id, ["A", "B", "C"])
    with session_factory() as db:
        stamps_before = {
            row.unit_index: row.updated_at
            for row in db.scalars(select(SerialNumber).where(SerialNumber.line_item_id == line_item_id))
        }
    ids_before = {index: row_id for row_id, index, _ in _rows(session_factory, line_item_id)}

    result = service.save_serial_numbers(line_item_id, ["A", "X", "C"])

    assert (result.created, result.updated, result.deleted, result.unchanged) == (0, 1, 0, 2)
    rows = _rows(session_factory, line_item_id)
    assert {index: row_id for row_id, index, _ in rows} == ids_before
    assert [serial for _, _, serial in rows] == ["A", "X", "C"]
    with session_factory() as db:
        stamps_after = {
            row.unit_index: row.updated_at
            for row in db.scalars(select(SerialNumber).where(SerialNumber.line_item_id == line_item_id))
        }
    assert stamps_after[1] == stamps_before[1]
    assert stamps_after[3] == stamps_before[3]


def test_shorter_submission_deletes_only_trailing_units(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=3)
    service = SerialNumberService(session_factory)
    service.save_serial_numbers(line_item_id, ["A", "B", "C"])
    ids_before = {index: row_id for row_id, index, _ in _rows(session_factory, line_item_id)}
    _set_quantity(session_factory, line_item_id, 2)

    result = service.save_serial_numbers(line_item_id, ["A", "B"])

    assert (result.created, result.updated, result.deleted, result.unchanged) == (0, 0, 1, 2)
    rows = _rows(session_factory, line_item_id)
    assert [(row_id, index) for row_id, index, _ in rows] == [(ids_before[1], 1), (ids_before[2], 2)]


def test_swapping_values_between_units(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=2)
    service = SerialNumberService(session_factory)
    service.save_serial_numbers(line_item_id, ["A", "B"])

    result = service.save_serial_numbers(line_item_id, ["B", "A"])

    assert result.updated == 2
    assert [serial for _, _, serial in _rows(session_factory, line_item_id)] == ["B", "A"]


def test_mapping_submission_is_keyed_by_unit(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=2)

    SerialNumberService(session_factory).save_serial_numbers(line_item_id, {2: "SECOND", 1: "FIRST"})

    assert [(index, serial) for _, index, serial in _rows(session_factory, line_item_id)] == [
        (1, "FIRST"),
        (2, "SECOND"),
    ]


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


def test_duplicate_within_submission_writes_nothing(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=3)

    with pytest.raises(SerialValidationError) as excinfo:
        SerialNumberService(session_factory).save_serial_numbers(line_item_id, ["S1", "S1", "S2"])

    assert "Duplicate serial number: S1" in str(excinfo.value)
    assert _rows(session_factory, line_item_id) == []


def test_blank_and_count_violations_are_reported_together(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=3)

    with pytest.raises(SerialValidationError) as excinfo:
        SerialNumberService(session_factory).save_serial_numbers(line_item_id, ["A", ""])

    assert excinfo.value.violations == [
        "Expected 3 serial numbers, got 2",
        "All 3 serial numbers must be filled in (unit 2 empty)",
    ]


def test_serial_used_on_another_order_is_rejected(session_factory, make_line_item) -> None:
    other = make_line_item(quantity=1, order_name="#1002")
    SerialNumberService(session_factory).save_serial_numbers(other, ["S-1"])
    line_item_id = make_line_item(quantity=2, order_name="#1003")

    with pytest.raises(SerialConflictError) as excinfo:
        SerialNumberService(session_factory).save_serial_numbers(line_item_id, ["S-1", "S-2"])

    assert excinfo.value.conflicts == [("S-1", "#1002")]
    assert "S-1 (already used in #1002)" in str(excinfo.value)
    assert _rows(session_factory, line_item_id) == []


def test_failed_update_leaves_previous_serials(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=2)
    service = SerialNumberService(session_factory)
    service.save_serial_numbers(line_item_id, ["A", "B"])
    before = _rows(session_factory, line_item_id)

    with pytest.raises(SerialValidationError):
        service.save_serial_numbers(line_item_id, ["A", "A"])

    assert _rows(session_factory, line_item_id) == before


def test_unknown_line_item_raises_not_found(session_factory) -> None:
    with pytest.raises(NotFoundError):
        SerialNumberService(session_factory).save_serial_numbers(999, ["A"])


def test_unique_constraint_race_is_reported_as_conflict(session_factory, make_line_item) -> None:
    """A serial committed between the pre-check and the insert still surfaces as a conflict."""
    other = make_line_item(quantity=1, order_name="#1002")
    SerialNumberService(session_factory).save_serial_numbers(other, ["S-1"])
    line_item_id = make_line_item(quantity=1, order_name="#1003")

    with patch(
        "saddle_serials.application.serial_service.find_conflicts",
        side_effect=[[], [("S-1", "#1002")]],
    ):
        with pytest.raises(SerialConflictError) as excinfo:
            SerialNumberService(session_factory).save_serial_numbers(line_item_id, ["S-1"])

    assert excinfo.value.conflicts == [("S-1", "#1002")]
    assert _rows(session_factory, line_item_id) == []


def test_concurrent_save_of_same_line_item_asks_for_retry(session_factory, make_line_item) -> None:
    """A unit-index clash with no foreign serial is not blamed on another order."""
    line_item_id = make_line_item(quantity=1)
    clash = IntegrityError(
        "INSERT INTO serial_numbers",
        {},
        Exception("UNIQUE constraint failed: serial_numbers.line_item_id, serial_numbers.unit_index"),
    )

    with patch.object(SerialNumberService, "_reconcile", side_effect=clash):
        with pytest.raises(SerialSaveConflictError) as excinfo:
            SerialNumberService(session_factory).save_serial_numbers(line_item_id, ["S-1"])

    assert excinfo.value.line_item_id == line_item_id
    assert "saved concurrently" in str(excinfo.value)
    assert "another order" not in str(excinfo.value)


# ---------------------------------------------------------------------------
# save_for_order
# ---------------------------------------------------------------------------


def _order_id(session_factory, line_item_id: int) -> int:
    with session_factory() as db:
        return db.get(LineItem, line_item_id).order_id


def test_save_for_order_saves_every_line_item(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=2)
    order_id = _order_id(session_factory, line_item_id)

    outcome = SerialNumberService(session_factory).save_for_order(order_id, {line_item_id: ["A", "B"]})

    assert outcome.success is True
    assert outcome.message == "Serial numbers saved successfully"
    assert outcome.saved == [line_item_id]


def test_save_for_order_reports_failures_per_line_item(session_factory, make_line_item) -> None:
    line_item_id = make_line_item(quantity=2)
    order_id = _order_id(session_factory, line_item_id)
    foreign = make_line_item(quantity=1, order_name="#1002")

    outcome = SerialNumberService(session_factory).save_for_order(
        order_id, {line_item_id: ["A", ""], foreign: ["Z"]}
    )

    assert outcome.success is False
    assert outcome.saved == []
    assert set(outcome.failed) == {line_item_id, foreign}
    assert "unit 2 empty" in outcome.error
    assert _rows(session_factory, foreign) == []


def test_save_for_unknown_order_raises_not_found(session_factory) -> None:
    with pytest.raises(NotFoundError):
        SerialNumberService(session_factory).save_for_order(404, {})
