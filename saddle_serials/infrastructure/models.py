"""SQLAlchemy models for the local order cache and serial numbers."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from saddle_serials.infrastructure.database import Base


def utcnow() -> datetime:
    return datetime.now(UTC)


class Order(Base):
    """Shopify order containing at least one tracked line item."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shopify_order_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    order_number: Mapped[str] = mapped_column(String(50))
    order_name: Mapped[str] = mapped_column(String(50))  # e.g. "#1001"

    # Remote timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Status
    fulfillment_status: Mapped[Optional[str]] = mapped_column(String(50))
    financial_status: Mapped[Optional[str]] = mapped_column(String(50))

    # Customer
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))

    # Financial
    total_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    currency: Mapped[Optional[str]] = mapped_column(String(3))

    tags: Mapped[Optional[str]] = mapped_column(Text)
    note: Mapped[Optional[str]] = mapped_column(Text)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    line_items: Mapped[list["LineItem"]] = relationship(
        back_populates="order", order_by="LineItem.id"
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_name}>"


class LineItem(Base):
    __tablename__ = "line_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shopify_line_item_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), index=True
    )
    product_id: Mapped[Optional[str]] = mapped_column(String(255))
    variant_id: Mapped[Optional[str]] = mapped_column(String(255))
    product_title: Mapped[str] = mapped_column(String(500))
    variant_title: Mapped[Optional[str]] = mapped_column(String(255))
    sku: Mapped[Optional[str]] = mapped_column(String(100))
    quantity: Mapped[int] = mapped_column(Integer)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    is_saddle: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    product_type: Mapped[Optional[str]] = mapped_column(String(255))
    product_tags: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped[Order] = relationship(back_populates="line_items")
    serial_numbers: Mapped[list["SerialNumber"]] = relationship(
        back_populates="line_item", order_by="SerialNumber.unit_index"
    )

    def __repr__(self) -> str:
        return f"<LineItem {self.product_title} x{self.quantity}>"


class SerialNumber(Base):
    """Serial of one physical unit; ``unit_index`` runs 1..quantity."""

    __tablename__ = "serial_numbers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    line_item_id: Mapped[int] = mapped_column(
        ForeignKey("line_items.id", ondelete="CASCADE"), index=True
    )
    unit_index: Mapped[int] = mapped_column(Integer)
    # No two physical units may share a serial, across all orders
    serial_number: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    entered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    line_item: Mapped[LineItem] = relationship(back_populates="serial_numbers")

    __table_args__ = (
        UniqueConstraint("line_item_id", "unit_index", name="serial_numbers_line_item_unit_unique"),
    )


class ShopSession(Base):
    """Per-shop access credentials written by the OAuth flow."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    shop: Mapped[str] = mapped_column(String(255), index=True)
    state: Mapped[Optional[str]] = mapped_column(String(255))
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    scope: Mapped[Optional[str]] = mapped_column(Text)
    access_token: Mapped[str] = mapped_column(String(255))
    expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
