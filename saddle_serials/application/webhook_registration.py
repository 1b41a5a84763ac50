import httpx
from loguru import logger

from saddle_serials.infrastructure.shopify_client import ShopifyGraphQLClient, ShopifyGraphQLError

# Topic -> callback path served by the webhook router
ORDER_WEBHOOK_TOPICS: dict[str, str] = {
    "ORDERS_CREATE": "/webhooks/orders/create",
    "ORDERS_UPDATED": "/webhooks/orders/updated",
    "ORDERS_CANCELLED": "/webhooks/orders/cancelled",
}

SUBSCRIPTION_CREATE_MUTATION = """
  mutation SubscribeOrders($topic: WebhookSubscriptionTopic!, $callbackUrl: URL!) {
    webhookSubscriptionCreate(
      topic: $topic
      webhookSubscription: { callbackUrl: $callbackUrl, format: JSON }
    ) {
      webhookSubscription {
        id
        topic
        endpoint {
          __typename
          ... on WebhookHttpEndpoint {
            callbackUrl
          }
        }
      }
      userErrors {
        field
        message
      }
    }
  }
"""

SUBSCRIPTIONS_QUERY = """
  query WebhookSubscriptions {
    webhookSubscriptions(first: 50) {
      edges {
        node {
          id
          topic
          endpoint {
            __typename
            ... on WebhookHttpEndpoint {
              callbackUrl
            }
          }
        }
      }
    }
  }
"""


class WebhookRegistrar:
    """Subscribes a shop to the order topics this app reconciles."""

    def __init__(self, client: ShopifyGraphQLClient) -> None:
        self._client = client

    def register(self, app_url: str) -> list[dict]:
        """Create one subscription per topic; a failing topic does not stop the rest."""
        base_url = app_url.rstrip("/")
        results: list[dict] = []
        for topic, path in ORDER_WEBHOOK_TOPICS.items():
            try:
                data = self._client.execute(
                    SUBSCRIPTION_CREATE_MUTATION,
                    {"topic": topic, "callbackUrl": f"{base_url}{path}"},
                )
            except (ShopifyGraphQLError, httpx.HTTPError) as exc:
                results.append({"topic": topic, "error": str(exc)})
                continue

            payload = data["data"]["webhookSubscriptionCreate"]
            if payload.get("userErrors"):
                logger.warning(f"[Webhooks] {topic} rejected on {self._client.shop}: {payload['userErrors']}")
            results.append({"topic": topic, "result": payload})

        logger.info(f"[Webhooks] Registration finished for {self._client.shop}")
        return results

    def list_subscriptions(self) -> list[dict]:
        data = self._client.execute(SUBSCRIPTIONS_QUERY)
        return [edge["node"] for edge in data["data"]["webhookSubscriptions"]["edges"]]
