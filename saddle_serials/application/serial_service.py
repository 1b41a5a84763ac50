from collections.abc import Iterable, Mapping, Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from saddle_serials.domain.errors import (
    NotFoundError,
    SaddleSerialsError,
    SerialConflictError,
    SerialSaveConflictError,
    SerialValidationError,
)
from saddle_serials.domain.results import OrderSerialsResult, SerialSaveResult
from saddle_serials.infrastructure.models import LineItem, Order, SerialNumber

SerialInput = Sequence[str | None] | Mapping[int, str | None]


def normalize_serials(serials: SerialInput) -> dict[int, str | None]:
    """Key a submission by 1-based unit index.

    A sequence is positional (item ``i`` is unit ``i + 1``); a mapping is taken
    as already keyed by unit index.
    """
    if isinstance(serials, Mapping):
        return {int(index): value for index, value in sorted(serials.items())}
    return {index: value for index, value in enumerate(serials, start=1)}


def validate_serials(entries: Mapping[int, str | None], quantity: int) -> list[str]:
    """Return every rule the submission breaks; an empty list means valid."""
    violations: list[str] = []

    if len(entries) != quantity:
        violations.append(f"Expected {quantity} serial numbers, got {len(entries)}")

    if sorted(entries) != list(range(1, len(entries) + 1)):
        violations.append(f"Unit indices must run from 1 to {len(entries)}")

    blank = [str(index) for index, value in entries.items() if not (value or "").strip()]
    if blank:
        violations.append(
            f"All {quantity} serial numbers must be filled in (unit {', '.join(blank)} empty)"
        )

    seen: set[str] = set()
    reported: set[str] = set()
    for value in entries.values():
        trimmed = (value or "").strip()
        if not trimmed:
            continue
        if trimmed in seen and trimmed not in reported:
            violations.append(f"Duplicate serial number: {trimmed}")
            reported.add(trimmed)
        seen.add(trimmed)

    return violations


def find_conflicts(
    db: Session, values: Iterable[str], exclude_line_item_id: int | None = None
) -> list[tuple[str, str | None]]:
    """Serials from ``values`` already recorded on other line items, with their order name."""
    values = list(values)
    if not values:
        return []
    query = (
        select(SerialNumber.serial_number, Order.order_name)
        .join(LineItem, SerialNumber.line_item_id == LineItem.id)
        .join(Order, LineItem.order_id == Order.id)
        .where(SerialNumber.serial_number.in_(values))
        .order_by(SerialNumber.serial_number)
    )
    if exclude_line_item_id is not None:
        query = query.where(SerialNumber.line_item_id != exclude_line_item_id)
    return [(serial, order_name) for serial, order_name in db.execute(query)]


class SerialNumberService:
    """Validates and stores the per-unit serial numbers of a line item."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def save_serial_numbers(self, line_item_id: int, serials: SerialInput) -> SerialSaveResult:
        """Reconcile the stored serials of one line item with ``serials``.

        Rows are matched by unit index: equal values are left alone, changed
        values are updated in place, missing units are created, and units past
        the end of the submission are deleted. Everything happens in one
        transaction; any failure leaves the stored serials untouched.

        Raises:
            NotFoundError: if the line item does not exist.
            SerialValidationError: if the submission breaks an entry rule.
            SerialConflictError: if a serial is already used on another line item.
            SerialSaveConflictError: if a concurrent save of this line item won.
        """
        entries = normalize_serials(serials)
        try:
            with self._session_factory.begin() as db:
                result = self._reconcile(db, line_item_id, entries)
        except IntegrityError as exc:
            # A concurrent submission committed first: either one of these serials
            # on another line item, or units of this same line item
            logger.warning(f"[Serials] Unique constraint hit for line item {line_item_id}: {exc.orig}")
            with self._session_factory() as db:
                wanted = [value.strip() for value in entries.values() if value]
                conflicts = find_conflicts(db, wanted, exclude_line_item_id=line_item_id)
            if conflicts:
                raise SerialConflictError(conflicts) from exc
            raise SerialSaveConflictError(line_item_id) from exc

        logger.info(
            f"[Serials] Line item {line_item_id}: {result.created} created, "
            f"{result.updated} updated, {result.deleted} deleted, {result.unchanged} unchanged"
        )
        return result

    def _reconcile(
        self, db: Session, line_item_id: int, entries: dict[int, str | None]
    ) -> SerialSaveResult:
        line_item = db.get(LineItem, line_item_id)
        if line_item is None:
            raise NotFoundError(f"Line item {line_item_id} not found")

        violations = validate_serials(entries, line_item.quantity)
        if violations:
            raise SerialValidationError(violations)

        wanted = {index: value.strip() for index, value in entries.items()}

        conflicts = find_conflicts(db, wanted.values(), exclude_line_item_id=line_item_id)
        if conflicts:
            raise SerialConflictError(conflicts)

        existing = {
            row.unit_index: row
            for row in db.scalars(
                select(SerialNumber).where(SerialNumber.line_item_id == line_item_id)
            )
        }
        result = SerialSaveResult()

        for index in sorted(index for index in existing if index > len(wanted)):
            db.delete(existing.pop(index))
            result.deleted += 1
        db.flush()

        changed = {
            index: value
            for index, value in wanted.items()
            if index in existing and existing[index].serial_number != value
        }
        result.unchanged = sum(1 for index in wanted if index in existing) - len(changed)

        # Moving a value between units of this line item would briefly violate
        # the unique serial constraint; park the changed rows first.
        held = {existing[index].serial_number for index in changed}
        if any(value in held for value in changed.values()):
            for index in changed:
                existing[index].serial_number = f"__pending__{existing[index].id}"
            db.flush()

        for index, value in changed.items():
            existing[index].serial_number = value
            result.updated += 1
        db.flush()

        for index, value in wanted.items():
            if index not in existing:
                db.add(SerialNumber(line_item_id=line_item_id, unit_index=index, serial_number=value))
                result.created += 1

        db.flush()
        return result

    def save_for_order(
        self, order_id: int, submissions: Mapping[int, SerialInput]
    ) -> OrderSerialsResult:
        """Save the serial form of one order, one line item per transaction.

        Line items that fail keep their previous serials; the others are saved.
        """
        with self._session_factory() as db:
            if db.get(Order, order_id) is None:
                raise NotFoundError(f"Order {order_id} not found")
            owned = set(db.scalars(select(LineItem.id).where(LineItem.order_id == order_id)))

        outcome = OrderSerialsResult(success=True)
        for line_item_id, serials in submissions.items():
            try:
                if line_item_id not in owned:
                    raise NotFoundError(f"Line item {line_item_id} not found on order {order_id}")
                self.save_serial_numbers(line_item_id, serials)
                outcome.saved.append(line_item_id)
            except SaddleSerialsError as exc:
                logger.warning(f"[Serials] Order {order_id}, line item {line_item_id}: {exc}")
                outcome.failed[line_item_id] = str(exc)

        if outcome.failed:
            outcome.success = False
            outcome.error = "; ".join(outcome.failed.values())
        else:
            outcome.message = "Serial numbers saved successfully"
        return outcome
