import time
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal

from loguru import logger

from saddle_serials.domain.classifier import split_tags
from saddle_serials.domain.config import MAX_PAGE_SIZE, RateLimitPolicy
from saddle_serials.domain.order import (
    OrderPage,
    RemoteCustomer,
    RemoteLineItem,
    RemoteOrder,
)
from saddle_serials.infrastructure.shopify_client import ShopifyGraphQLClient
from saddle_serials.shared.decorators import log_errors


def _search_timestamp(value: datetime) -> str:
    """Shopify search syntax wants UTC; naive values are taken as UTC already."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")

ORDERS_QUERY = """
  query FetchOrders($first: Int!, $after: String, $query: String) {
    orders(first: $first, after: $after, query: $query, sortKey: CREATED_AT, reverse: true) {
      pageInfo {
        hasNextPage
        endCursor
      }
      edges {
        node {
          id
          name
          createdAt
          updatedAt
          displayFulfillmentStatus
          displayFinancialStatus
          customer {
            displayName
            email
            phone
          }
          totalPriceSet {
            shopMoney {
              amount
              currencyCode
            }
          }
          tags
          note
          lineItems(first: 100) {
            edges {
              node {
                id
                title
                variantTitle
                sku
                quantity
                originalUnitPriceSet {
                  shopMoney { amount }
                }
                product {
                  id
                  productType
                  tags
                }
                variant {
                  id
                }
              }
            }
          }
        }
      }
    }
  }
"""


class ShopifyOrderRepository:
    """Reads the shop's orders, newest first, one cursor page at a time."""

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        rate_limit: RateLimitPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._rate_limit = rate_limit or RateLimitPolicy()
        self._sleep = sleep

    @log_errors
    def fetch_page(
        self,
        cursor: str | None,
        page_size: int = MAX_PAGE_SIZE,
        since: datetime | None = None,
    ) -> OrderPage:
        """Return the page after ``cursor``; ``since`` narrows the search server-side."""
        variables: dict = {
            "first": min(max(page_size, 1), MAX_PAGE_SIZE),
            "after": cursor,
            "query": f"created_at:>={_search_timestamp(since)}" if since else None,
        }
        data = self._client.execute(ORDERS_QUERY, variables)
        self._respect_throttle(data)

        page = data["data"]["orders"]
        page_info = page["pageInfo"]
        return OrderPage(
            nodes=[edge["node"] for edge in page["edges"]],
            has_next_page=bool(page_info["hasNextPage"]),
            end_cursor=page_info.get("endCursor"),
        )

    def _respect_throttle(self, data: dict) -> None:
        """Wait for the cost bucket to refill when the next page would overdraw it."""
        cost = data.get("extensions", {}).get("cost", {})
        throttle = cost.get("throttleStatus", {})
        actual_cost = cost.get("actualQueryCost", 0)
        currently_available = throttle.get("currentlyAvailable", 1000)
        restore_rate = throttle.get("restoreRate", 50) or 50
        logger.debug(
            f"[Shopify] Query cost: {actual_cost} | "
            f"Available: {currently_available} / {throttle.get('maximumAvailable')}"
        )

        needed = actual_cost + self._rate_limit.cost_buffer
        if currently_available < needed:
            wait_seconds = (needed - currently_available) / restore_rate
            logger.warning(
                f"[Shopify] Budget low: available {currently_available}, "
                f"next query needs {needed}; waiting {wait_seconds:.1f}s"
            )
            self._sleep(wait_seconds)

    @staticmethod
    def map_node(node: dict) -> RemoteOrder:
        """Map a raw GraphQL order node to a ``RemoteOrder``.

        Raises ``KeyError`` or ``pydantic.ValidationError`` on malformed nodes.
        """
        money = (node.get("totalPriceSet") or {}).get("shopMoney") or {}
        customer = node.get("customer") or {}

        line_items = []
        for edge in node["lineItems"]["edges"]:
            item = edge["node"]
            product = item.get("product") or {}
            unit_price = (item.get("originalUnitPriceSet") or {}).get("shopMoney") or {}
            line_items.append(
                RemoteLineItem(
                    id=item["id"],
                    title=item["title"],
                    variant_title=item.get("variantTitle"),
                    sku=item.get("sku"),
                    quantity=item["quantity"],
                    price=unit_price.get("amount"),
                    product_id=product.get("id"),
                    variant_id=(item.get("variant") or {}).get("id"),
                    product_type=product.get("productType"),
                    product_tags=split_tags(product.get("tags")),
                )
            )

        return RemoteOrder(
            id=node["id"],
            name=node["name"],
            order_number=node["name"],
            created_at=node["createdAt"],
            updated_at=node.get("updatedAt"),
            financial_status=node.get("displayFinancialStatus"),
            fulfillment_status=node.get("displayFulfillmentStatus"),
            customer=RemoteCustomer(
                name=customer.get("displayName"),
                email=customer.get("email"),
                phone=customer.get("phone"),
            ),
            total_price=Decimal(money["amount"]) if money.get("amount") else None,
            currency=money.get("currencyCode"),
            tags=split_tags(node.get("tags")),
            note=node.get("note"),
            line_items=line_items,
        )
