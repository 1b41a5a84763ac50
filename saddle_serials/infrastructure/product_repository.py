from collections.abc import Iterable

import httpx
from loguru import logger

from saddle_serials.domain.classifier import split_tags
from saddle_serials.domain.interfaces import ICredentialsProvider
from saddle_serials.infrastructure.shopify_client import (
    ShopifyClientFactory,
    ShopifyGraphQLError,
)

PRODUCT_TAGS_QUERY = """
  query ProductTags($ids: [ID!]!) {
    nodes(ids: $ids) {
      ... on Product {
        id
        tags
      }
    }
  }
"""


class ShopifyProductTagLookup:
    """Resolves product tags for webhook payloads, which do not embed them.

    A failed or empty lookup yields no tags, so the item is treated as
    untracked rather than failing the delivery.
    """

    def __init__(
        self,
        credentials: ICredentialsProvider,
        client_factory: ShopifyClientFactory,
    ) -> None:
        self._credentials = credentials
        self._client_factory = client_factory

    def tags_for(self, shop: str, product_ids: Iterable[str]) -> dict[str, list[str]]:
        ids = sorted({pid for pid in product_ids if pid})
        if not ids:
            return {}

        credentials = self._credentials.find_for_shop(shop)
        if credentials is None:
            logger.warning(f"[Products] No session for {shop}; cannot look up tags")
            return {}

        client = self._client_factory.for_credentials(credentials)
        try:
            data = client.execute(PRODUCT_TAGS_QUERY, {"ids": ids})
        except (ShopifyGraphQLError, httpx.HTTPError) as exc:
            logger.warning(f"[Products] Tag lookup failed for {shop}: {exc}")
            return {}

        return {
            node["id"]: split_tags(node.get("tags"))
            for node in data.get("data", {}).get("nodes") or []
            if node and node.get("id")
        }
