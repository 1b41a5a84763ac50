"""Read models behind the saddle order list and the serial entry page."""

from datetime import datetime

from pydantic import BaseModel, Field, computed_field
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from saddle_serials.domain.errors import NotFoundError
from saddle_serials.infrastructure.models import LineItem, Order


class SerialView(BaseModel):
    unit_index: int
    serial_number: str
    entered_at: datetime


class LineItemView(BaseModel):
    id: int
    product_title: str
    variant_title: str | None = None
    sku: str | None = None
    quantity: int
    serials_entered: int
    serials: list[SerialView] = Field(default_factory=list)


class OrderView(BaseModel):
    id: int
    order_name: str
    created_at: datetime
    customer_name: str | None = None
    customer_email: str | None = None
    financial_status: str | None = None
    fulfillment_status: str | None = None
    line_items: list[LineItemView] = Field(default_factory=list)

    @computed_field
    @property
    def all_serials_entered(self) -> bool:
        return all(item.serials_entered == item.quantity for item in self.line_items)


def _view(order: Order) -> OrderView:
    return OrderView(
        id=order.id,
        order_name=order.order_name,
        created_at=order.created_at,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        financial_status=order.financial_status,
        fulfillment_status=order.fulfillment_status,
        line_items=[
            LineItemView(
                id=item.id,
                product_title=item.product_title,
                variant_title=item.variant_title,
                sku=item.sku,
                quantity=item.quantity,
                serials_entered=len(item.serial_numbers),
                serials=[
                    SerialView(
                        unit_index=serial.unit_index,
                        serial_number=serial.serial_number,
                        entered_at=serial.entered_at,
                    )
                    for serial in item.serial_numbers
                ],
            )
            for item in order.line_items
            if item.is_saddle
        ],
    )


class OrderQueries:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def list_saddle_orders(self, limit: int = 50) -> list[OrderView]:
        """Newest orders having at least one saddle line item."""
        query = (
            select(Order)
            .where(Order.line_items.any(LineItem.is_saddle.is_(True)))
            .options(selectinload(Order.line_items).selectinload(LineItem.serial_numbers))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
        )
        with self._session_factory() as db:
            return [_view(order) for order in db.scalars(query)]

    def get_order_detail(self, order_id: int) -> OrderView:
        query = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.line_items).selectinload(LineItem.serial_numbers))
        )
        with self._session_factory() as db:
            order = db.scalars(query).first()
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            return _view(order)
