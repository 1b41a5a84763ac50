"""Shared fixtures: an in-memory database per test and a stored shop session."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from saddle_serials.domain.session import ShopCredentials
from saddle_serials.infrastructure.database import (
    create_db_engine,
    create_session_factory,
    init_db,
)
from saddle_serials.infrastructure.models import LineItem, Order

SHOP = "saddlery.myshopify.com"


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def credentials() -> ShopCredentials:
    return ShopCredentials(id=f"offline_{SHOP}", shop=SHOP, access_token="shpat_test")


@pytest.fixture
def make_line_item(session_factory):
    """Persist an order with one saddle line item and return the line item id."""

    def _make(
        quantity: int = 3,
        order_name: str = "#1001",
        shopify_order_id: str | None = None,
        shopify_line_item_id: str | None = None,
    ) -> int:
        number = order_name.lstrip("#")
        with session_factory.begin() as db:
            order = Order(
                shopify_order_id=shopify_order_id or f"gid://shopify/Order/{number}",
                order_number=order_name,
                order_name=order_name,
                created_at=datetime(2025, 3, 1, 9, 0, tzinfo=UTC),
                financial_status="PAID",
                fulfillment_status="UNFULFILLED",
            )
            db.add(order)
            db.flush()
            line_item = LineItem(
                shopify_line_item_id=shopify_line_item_id or f"gid://shopify/LineItem/{number}01",
                order_id=order.id,
                product_title="Western Saddle",
                quantity=quantity,
                price=Decimal("1299.00"),
                is_saddle=True,
                product_tags="Saddles",
            )
            db.add(line_item)
            db.flush()
            return line_item.id

    return _make
