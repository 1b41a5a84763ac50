"""Tests for the GraphQL client, product tag lookup, webhook registration and session storage."""

import base64
import hashlib
import hmac
import json
from unittest.mock import MagicMock

import httpx
import pytest

from saddle_serials.application.webhook_registration import WebhookRegistrar
from saddle_serials.domain.config import ShopifyApiConfig
from saddle_serials.domain.session import ShopCredentials, offline_session_id
from saddle_serials.infrastructure.product_repository import ShopifyProductTagLookup
from saddle_serials.infrastructure.session_store import SessionStore
from saddle_serials.infrastructure.shopify_client import (
    ShopifyClientFactory,
    ShopifyGraphQLClient,
    ShopifyGraphQLError,
    shop_domain,
)
from saddle_serials.shared.security import verify_webhook_hmac

SHOP = "saddlery.myshopify.com"


def _client(handler) -> ShopifyGraphQLClient:
    return ShopifyGraphQLClient(
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        shop="saddlery",
        access_token="shpat_test",
        api_version="2024-10",
    )


# ---------------------------------------------------------------------------
# ShopifyGraphQLClient
# ---------------------------------------------------------------------------


def test_shop_domain_normalizes_bare_names() -> None:
    assert shop_domain("saddlery") == SHOP
    assert shop_domain("https://saddlery.myshopify.com/") == SHOP


def test_execute_posts_to_admin_endpoint_with_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": {"shop": {"name": "Saddlery"}}, "extensions": {}})

    body = _client(handler).execute("{ shop { name } }", {"first": 1})

    assert body["data"]["shop"]["name"] == "Saddlery"
    assert "extensions" in body
    request = seen[0]
    assert str(request.url) == f"https://{SHOP}/admin/api/2024-10/graphql.json"
    assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
    assert json.loads(request.content) == {"query": "{ shop { name } }", "variables": {"first": 1}}


def test_execute_raises_on_graphql_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [{"message": "Throttled"}]})

    with pytest.raises(ShopifyGraphQLError):
        _client(handler).execute("{ shop { name } }")


def test_execute_raises_on_http_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"errors": "Invalid API key or access token"})

    with pytest.raises(httpx.HTTPStatusError):
        _client(handler).execute("{ shop { name } }")


# ---------------------------------------------------------------------------
# ShopifyProductTagLookup
# ---------------------------------------------------------------------------


def _lookup(handler, credentials: ShopCredentials | None) -> ShopifyProductTagLookup:
    provider = MagicMock(spec=SessionStore)
    provider.find_for_shop.return_value = credentials
    factory = ShopifyClientFactory(
        ShopifyApiConfig(), client=httpx.Client(transport=httpx.MockTransport(handler))
    )
    return ShopifyProductTagLookup(provider, factory)


def test_tag_lookup_maps_product_ids_to_tags(credentials) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["variables"] == {"ids": ["gid://shopify/Product/1"]}
        return httpx.Response(
            200, json={"data": {"nodes": [{"id": "gid://shopify/Product/1", "tags": ["Saddles"]}, None]}}
        )

    tags = _lookup(handler, credentials).tags_for(SHOP, ["gid://shopify/Product/1"])

    assert tags == {"gid://shopify/Product/1": ["Saddles"]}


def test_tag_lookup_without_session_returns_nothing() -> None:
    handler = MagicMock()

    assert _lookup(handler, None).tags_for(SHOP, ["gid://shopify/Product/1"]) == {}
    handler.assert_not_called()


def test_tag_lookup_failure_returns_nothing(credentials) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    assert _lookup(handler, credentials).tags_for(SHOP, ["gid://shopify/Product/1"]) == {}


# ---------------------------------------------------------------------------
# WebhookRegistrar
# ---------------------------------------------------------------------------


def test_register_builds_callback_urls_and_continues_after_errors() -> None:
    client = MagicMock(spec=ShopifyGraphQLClient)
    client.shop = SHOP
    client.execute.side_effect = [
        {"data": {"webhookSubscriptionCreate": {"webhookSubscription": {"id": "1"}, "userErrors": []}}},
        ShopifyGraphQLError([{"message": "Access denied"}]),
        {"data": {"webhookSubscriptionCreate": {"webhookSubscription": {"id": "3"}, "userErrors": []}}},
    ]

    results = WebhookRegistrar(client).register("https://serials.example.com/")

    callbacks = [c[0][1]["callbackUrl"] for c in client.execute.call_args_list]
    assert callbacks == [
        "https://serials.example.com/webhooks/orders/create",
        "https://serials.example.com/webhooks/orders/updated",
        "https://serials.example.com/webhooks/orders/cancelled",
    ]
    assert "result" in results[0]
    assert results[1]["topic"] == "ORDERS_UPDATED"
    assert "Access denied" in results[1]["error"]
    assert "result" in results[2]


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------


def test_session_store_prefers_offline_session(session_factory) -> None:
    store = SessionStore(session_factory)
    store.store_session(ShopCredentials(id="online_1", shop=SHOP, access_token="online", is_online=True))
    store.store_session(ShopCredentials(id=offline_session_id(SHOP), shop=SHOP, access_token="offline"))

    found = store.find_for_shop(SHOP)

    assert found.access_token == "offline"
    assert store.find_for_shop("other.myshopify.com") is None


def test_session_store_upserts_and_deletes(session_factory) -> None:
    store = SessionStore(session_factory)
    session_id = offline_session_id(SHOP)
    store.store_session(ShopCredentials(id=session_id, shop=SHOP, access_token="old"))
    store.store_session(ShopCredentials(id=session_id, shop=SHOP, access_token="new"))

    assert store.load_session(session_id).access_token == "new"
    assert store.delete_for_shop(SHOP) == 1
    assert store.load_session(session_id) is None
    assert store.delete_session(session_id) is False


# ---------------------------------------------------------------------------
# Webhook signatures
# ---------------------------------------------------------------------------


def test_verify_webhook_hmac() -> None:
    body = b'{"id": 1}'
    signature = base64.b64encode(hmac.new(b"secret", body, hashlib.sha256).digest()).decode()

    assert verify_webhook_hmac(body, signature, "secret") is True
    assert verify_webhook_hmac(body, signature, "other-secret") is False
    assert verify_webhook_hmac(body, None, "secret") is False
    assert verify_webhook_hmac(body, signature, "") is False
