import httpx

from saddle_serials.domain.config import ShopifyApiConfig
from saddle_serials.domain.session import ShopCredentials
from saddle_serials.shared.decorators import log_errors


class ShopifyGraphQLError(Exception):
    """Raised when the Shopify API returns GraphQL errors."""


def shop_domain(shop: str) -> str:
    """``saddlery`` -> ``saddlery.myshopify.com``; full domains pass through."""
    shop = shop.strip().removeprefix("https://").rstrip("/")
    return shop if "." in shop else f"{shop}.myshopify.com"


class ShopifyGraphQLClient:
    """Thin httpx wrapper for one shop's Admin GraphQL endpoint."""

    def __init__(
        self,
        client: httpx.Client,
        shop: str,
        access_token: str,
        api_version: str,
    ) -> None:
        self._client = client
        self.shop = shop_domain(shop)
        self._endpoint = f"https://{self.shop}/admin/api/{api_version}/graphql.json"
        self._headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }

    @log_errors
    def execute(self, query: str, variables: dict | None = None) -> dict:
        """POST a GraphQL query and return the full response body.

        The body keeps ``extensions`` so callers can read the query cost.

        Raises:
            ShopifyGraphQLError: if the response contains a top-level ``errors`` key.
            httpx.HTTPStatusError: on non-2xx HTTP responses.
            httpx.TimeoutException: when the request exceeds the client timeout.
        """
        payload: dict = {"query": query}
        if variables:
            payload["variables"] = variables

        response = self._client.post(self._endpoint, headers=self._headers, json=payload)
        response.raise_for_status()

        body: dict = response.json()

        if errors := body.get("errors"):
            raise ShopifyGraphQLError(errors)

        return body


class ShopifyClientFactory:
    """Builds per-shop GraphQL clients sharing one pooled ``httpx.Client``."""

    def __init__(self, api_config: ShopifyApiConfig, client: httpx.Client | None = None) -> None:
        self._api_config = api_config
        self._client = client or httpx.Client(timeout=api_config.timeout_seconds)

    def for_credentials(self, credentials: ShopCredentials) -> ShopifyGraphQLClient:
        return ShopifyGraphQLClient(
            client=self._client,
            shop=credentials.shop,
            access_token=credentials.access_token,
            api_version=self._api_config.api_version,
        )

    def close(self) -> None:
        self._client.close()
