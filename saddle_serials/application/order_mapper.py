"""Maps Shopify REST webhook payloads onto the same domain objects the sync uses."""

from decimal import Decimal

from saddle_serials.domain.classifier import split_tags
from saddle_serials.domain.order import RemoteCustomer, RemoteLineItem, RemoteOrder


def to_gid(resource: str, value: int | str | None) -> str | None:
    """``to_gid("Order", 450789469)`` -> ``"gid://shopify/Order/450789469"``."""
    if value in (None, ""):
        return None
    value = str(value)
    return value if value.startswith("gid://") else f"gid://shopify/{resource}/{value}"


def embedded_product_tags(item: dict) -> list[str] | None:
    """Tags carried inside a payload line item, or None when absent."""
    product = item.get("product")
    if isinstance(product, dict) and product.get("tags") is not None:
        return split_tags(product["tags"])
    return None


def payload_product_ids(payload: dict) -> list[str]:
    """Product GIDs of line items whose tags must be looked up remotely."""
    ids = []
    for item in payload.get("line_items") or []:
        if embedded_product_tags(item) is None and (gid := to_gid("Product", item.get("product_id"))):
            ids.append(gid)
    return ids


def _customer(payload: dict) -> RemoteCustomer:
    customer = payload.get("customer") or {}
    first, last = customer.get("first_name"), customer.get("last_name")
    email = customer.get("email") or payload.get("email")
    return RemoteCustomer(
        name=f"{first} {last}" if first and last else email,
        email=email,
        phone=customer.get("phone") or payload.get("phone"),
    )


def _line_item(item: dict, product_tags: dict[str, list[str]]) -> RemoteLineItem:
    product_id = to_gid("Product", item.get("product_id"))
    tags = embedded_product_tags(item)
    if tags is None:
        tags = product_tags.get(product_id, []) if product_id else []
    return RemoteLineItem(
        id=item.get("admin_graphql_api_id") or to_gid("LineItem", item["id"]),
        title=item["title"],
        variant_title=item.get("variant_title"),
        sku=item.get("sku") or None,
        quantity=item["quantity"],
        price=Decimal(str(item["price"])) if item.get("price") is not None else None,
        product_id=product_id,
        variant_id=to_gid("ProductVariant", item.get("variant_id")),
        product_type=item.get("product_type"),
        product_tags=tags,
    )


def map_webhook_payload(
    payload: dict, product_tags: dict[str, list[str]] | None = None
) -> RemoteOrder:
    """Convert an ``orders/*`` webhook body into a ``RemoteOrder``.

    ``product_tags`` supplies tags (keyed by product GID) for line items that
    do not embed them. Line items whose ordered ``quantity`` is zero are dropped;
    ``current_quantity`` is not read, matching the ordered quantity the bulk
    sync stores.
    """
    product_tags = product_tags or {}
    order_number = payload.get("order_number")
    return RemoteOrder(
        id=payload.get("admin_graphql_api_id") or to_gid("Order", payload["id"]),
        name=payload["name"],
        order_number=str(order_number) if order_number is not None else payload["name"],
        created_at=payload["created_at"],
        updated_at=payload.get("updated_at"),
        financial_status=(payload.get("financial_status") or "pending").upper(),
        fulfillment_status=(payload.get("fulfillment_status") or "unfulfilled").upper(),
        customer=_customer(payload),
        total_price=Decimal(str(payload["total_price"])) if payload.get("total_price") is not None else None,
        currency=payload.get("currency"),
        tags=split_tags(payload.get("tags")),
        note=payload.get("note"),
        line_items=[
            _line_item(item, product_tags)
            for item in payload.get("line_items") or []
            if (item.get("quantity") or 0) > 0
        ],
    )
