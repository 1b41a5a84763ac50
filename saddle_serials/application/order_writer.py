"""Find-by-external-id upserts shared by the bulk sync and the webhook path.

Both paths key orders on ``shopify_order_id`` and line items on
``shopify_line_item_id``, so replaying the same remote state never adds rows.
"""

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from saddle_serials.domain.order import RemoteLineItem, RemoteOrder
from saddle_serials.infrastructure.models import LineItem, Order


def find_order(db: Session, shopify_order_id: str) -> Order | None:
    return db.scalars(select(Order).where(Order.shopify_order_id == shopify_order_id)).first()


def find_line_item(db: Session, shopify_line_item_id: str) -> LineItem | None:
    return db.scalars(
        select(LineItem).where(LineItem.shopify_line_item_id == shopify_line_item_id)
    ).first()


def upsert_order(db: Session, remote: RemoteOrder) -> tuple[Order, bool]:
    """Create or update the local copy of ``remote``; returns ``(order, created)``."""
    order = find_order(db, remote.id)
    created = order is None
    if created:
        order = Order(shopify_order_id=remote.id, created_at=remote.created_at)
        db.add(order)

    order.order_number = remote.order_number
    order.order_name = remote.name
    order.updated_at = remote.updated_at
    order.fulfillment_status = remote.fulfillment_status
    order.financial_status = remote.financial_status
    order.customer_name = remote.customer.name
    order.customer_email = remote.customer.email
    order.customer_phone = remote.customer.phone
    order.total_price = remote.total_price
    order.currency = remote.currency
    order.tags = ", ".join(remote.tags)
    order.note = remote.note
    order.last_synced_at = datetime.now(UTC)

    db.flush()
    return order, created


def upsert_line_item(
    db: Session, order: Order, remote: RemoteLineItem
) -> tuple[LineItem, int | None]:
    """Create or update one line item under ``order``.

    Returns ``(line_item, previous_quantity)``; ``previous_quantity`` is None
    for a newly created row.
    """
    line_item = find_line_item(db, remote.id)
    previous_quantity = None
    if line_item is None:
        line_item = LineItem(
            shopify_line_item_id=remote.id,
            order_id=order.id,
            product_id=remote.product_id,
            variant_id=remote.variant_id,
        )
        db.add(line_item)
    else:
        previous_quantity = line_item.quantity

    line_item.product_title = remote.title
    line_item.variant_title = remote.variant_title
    line_item.sku = remote.sku
    line_item.quantity = remote.quantity
    line_item.price = remote.price
    line_item.is_saddle = remote.is_saddle
    line_item.product_type = remote.product_type
    line_item.product_tags = ", ".join(remote.product_tags)

    db.flush()
    return line_item, previous_quantity
