"""Outcome objects returned by the sync engine, webhook reconciler and serial writer."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    # Serialized for the admin UI with camelCase keys (``totalOrders``, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncOptions(BaseModel):
    limit: int = Field(default=250, ge=1)
    only_saddle_orders: bool = True
    since_date: datetime | None = None


class SyncResult(_CamelModel):
    success: bool
    total_orders: int = 0
    total_line_items: int = 0
    saddle_line_items: int = 0
    batch_count: int = 0
    orders_created: int = 0
    orders_updated: int = 0
    orders_failed: int = 0
    error: str | None = None


class ReconcileSkipped(_CamelModel):
    skipped: Literal[True] = True
    reason: str


class ReconcileApplied(_CamelModel):
    success: Literal[True] = True
    action: str
    order: str | None = None
    changed: bool = True
    line_items: int = 0
    review_required: list[str] = Field(default_factory=list)


class ReconcileFailed(_CamelModel):
    success: Literal[False] = False
    error: str


ReconcileResult = ReconcileSkipped | ReconcileApplied | ReconcileFailed


class SerialSaveResult(_CamelModel):
    success: Literal[True] = True
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0

    @property
    def writes(self) -> int:
        return self.created + self.updated + self.deleted


class OrderSerialsResult(_CamelModel):
    """Outcome of the serial form for a whole order."""

    success: bool
    message: str | None = None
    error: str | None = None
    saved: list[int] = Field(default_factory=list)
    failed: dict[int, str] = Field(default_factory=dict)
