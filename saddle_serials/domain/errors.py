class SaddleSerialsError(Exception):
    """Base class for errors raised by the saddle serials core."""


class NotFoundError(SaddleSerialsError):
    """Raised when a referenced order or line item does not exist locally."""


class SerialValidationError(SaddleSerialsError):
    """Raised when a serial submission breaks one or more entry rules.

    All violations are collected before raising; ``str(exc)`` joins them.
    """

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__("; ".join(violations))


class SerialConflictError(SaddleSerialsError):
    """Raised when submitted serials are already recorded on another line item."""

    def __init__(self, conflicts: list[tuple[str, str | None]]) -> None:
        self.conflicts = conflicts
        details = ", ".join(
            f"{serial} (already used in {order_name or 'another order'})"
            for serial, order_name in conflicts
        )
        super().__init__(f"Duplicate serial numbers: {details}")


class SerialSaveConflictError(SaddleSerialsError):
    """Raised when another save of the same line item committed first."""

    def __init__(self, line_item_id: int) -> None:
        self.line_item_id = line_item_id
        super().__init__(
            f"Serial numbers for line item {line_item_id} were saved concurrently; reload and retry"
        )
