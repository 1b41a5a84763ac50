from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field

from saddle_serials.domain.classifier import is_saddle


class RemoteCustomer(BaseModel):
    """Customer contact details attached to a Shopify order."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None


class RemoteLineItem(BaseModel):
    id: str  # Shopify GID, e.g. "gid://shopify/LineItem/123"
    title: str
    variant_title: str | None = None
    sku: str | None = None
    quantity: int = Field(..., ge=1)
    price: Decimal | None = None
    product_id: str | None = None  # e.g. "gid://shopify/Product/9"
    variant_id: str | None = None
    product_type: str | None = None
    product_tags: list[str] = Field(default_factory=list)

    @property
    def is_saddle(self) -> bool:
        return is_saddle(self.product_tags)


class RemoteOrder(BaseModel):
    """A Shopify order as seen by either the bulk sync or a webhook delivery."""

    id: str  # Shopify GID, e.g. "gid://shopify/Order/123"
    name: str  # Human-readable order number, e.g. "#1001"
    order_number: str
    created_at: datetime
    updated_at: datetime | None = None
    financial_status: str | None = None  # e.g. "PAID"
    fulfillment_status: str | None = None  # e.g. "UNFULFILLED"
    customer: RemoteCustomer = Field(default_factory=RemoteCustomer)
    total_price: Decimal | None = None
    currency: str | None = None
    tags: list[str] = Field(default_factory=list)
    note: str | None = None
    line_items: List[RemoteLineItem] = Field(default_factory=list)

    @property
    def saddle_line_items(self) -> list[RemoteLineItem]:
        return [item for item in self.line_items if item.is_saddle]

    @property
    def has_saddles(self) -> bool:
        return any(item.is_saddle for item in self.line_items)


class OrderPage(BaseModel):
    """One cursor page of the remote order collection.

    ``nodes`` stay raw so a single malformed order can be skipped without
    losing the rest of the page.
    """

    nodes: list[dict] = Field(default_factory=list)
    has_next_page: bool = False
    end_cursor: str | None = None
