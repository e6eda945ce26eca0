import base64
import hashlib
import hmac

import pytest
import requests

import shopify_api
from conftest import SECRET, SHOP, TOKEN, session_token


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


def test_normalize_shop():
    assert shopify_api.normalize_shop(" https://Test-Shop.myshopify.com/admin ") == SHOP
    assert shopify_api.normalize_shop("") is None
    assert shopify_api.normalize_shop(None) is None


def test_is_valid_shop_domain():
    assert shopify_api.is_valid_shop_domain(SHOP)
    assert not shopify_api.is_valid_shop_domain("test-shop.example.com")
    assert not shopify_api.is_valid_shop_domain("evil.com/.myshopify.com")
    assert not shopify_api.is_valid_shop_domain(None)


def test_ids():
    assert shopify_api.customer_gid(42) == "gid://shopify/Customer/42"
    assert shopify_api.numeric_id("gid://shopify/ProductVariant/555") == "555"


def test_verify_webhook_hmac():
    body = b'{"id": 1}'
    good = base64.b64encode(hmac.new(SECRET.encode(), body, hashlib.sha256).digest()).decode()
    assert shopify_api.verify_webhook_hmac(body, good)
    assert not shopify_api.verify_webhook_hmac(b'{"id": 2}', good)
    assert not shopify_api.verify_webhook_hmac(body, None)


def test_app_proxy_signature_joins_repeated_values():
    params = {"shop": [SHOP], "ids": ["1", "2"], "timestamp": ["1700000000"]}
    assert shopify_api.app_proxy_message(params) == f"ids=1,2shop={SHOP}timestamp=1700000000"

    signature = hmac.new(SECRET.encode(), shopify_api.app_proxy_message(params).encode(), hashlib.sha256).hexdigest()
    params["signature"] = [signature]
    assert shopify_api.verify_app_proxy_signature(params)

    params["shop"] = ["other.myshopify.com"]
    assert not shopify_api.verify_app_proxy_signature(params)


def test_app_proxy_signature_missing():
    assert not shopify_api.verify_app_proxy_signature({"shop": [SHOP]})


def test_verify_oauth_hmac():
    params = {"code": "abc", "shop": SHOP, "timestamp": "1"}
    message = f"code=abc&shop={SHOP}&timestamp=1"
    params["hmac"] = hmac.new(SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()
    assert shopify_api.verify_oauth_hmac(params)

    params["code"] = "xyz"
    assert not shopify_api.verify_oauth_hmac(params)


def test_shop_from_session_token():
    claims = shopify_api.verify_id_token(session_token())
    assert shopify_api.shop_from_id_token(claims) == SHOP


def test_build_authorize_url():
    url = shopify_api.build_authorize_url(SHOP, "state123")
    assert url.startswith(f"https://{SHOP}/admin/oauth/authorize?")
    assert "state=state123" in url
    assert "redirect_uri=https%3A%2F%2Fwishflow.example.com%2Fauth%2Fcallback" in url


def test_graphql_request_sends_token(monkeypatch):
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured.update(url=url, headers=headers, json=json)
        return FakeResponse(payload={"data": {"shop": {"id": "gid://shopify/Shop/1"}}})

    monkeypatch.setattr(requests, "post", fake_post)
    result = shopify_api.graphql_request(SHOP, TOKEN, "{ shop { id } }")

    assert result["data"]["shop"]["id"] == "gid://shopify/Shop/1"
    assert captured["url"] == f"https://{SHOP}/admin/api/2024-10/graphql.json"
    assert captured["headers"]["X-Shopify-Access-Token"] == TOKEN
    assert "variables" not in captured["json"]


def test_graphql_request_raises_on_http_error(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: FakeResponse(status_code=503, text="unavailable"))
    with pytest.raises(shopify_api.ShopifyAPIError):
        shopify_api.graphql_request(SHOP, TOKEN, "{ shop { id } }")


def test_graphql_request_raises_on_network_error(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", boom)
    with pytest.raises(shopify_api.ShopifyAPIError):
        shopify_api.graphql_request(SHOP, TOKEN, "{ shop { id } }")


def test_fetch_products_by_handles(monkeypatch):
    def fake_graphql(shop, token, query, variables=None):
        assert variables == {"query": "handle:red-shirt OR handle:blue-hat"}
        return {"data": {"products": {"edges": [{"node": {
            "handle": "red-shirt",
            "title": "Red Shirt",
            "featuredImage": None,
            "variants": {"edges": [{"node": {"id": "gid://shopify/ProductVariant/555", "sku": "SKU-1"}}]},
        }}]}}}

    monkeypatch.setattr(shopify_api, "graphql_request", fake_graphql)
    meta, skus = shopify_api.fetch_products_by_handles(SHOP, TOKEN, ["red-shirt", "blue-hat"])

    assert meta == {"red-shirt": {"title": "Red Shirt", "image_url": ""}}
    assert skus == {"555": "SKU-1"}


def test_fetch_customers_refused(monkeypatch):
    monkeypatch.setattr(
        shopify_api, "graphql_request",
        lambda *args, **kwargs: {"errors": [{"message": "Access denied for nodes field"}]},
    )
    with pytest.raises(shopify_api.ShopifyAPIError):
        shopify_api.fetch_customers_by_ids(SHOP, TOKEN, ["1"])


def test_fetch_customers_formats_names(monkeypatch):
    monkeypatch.setattr(
        shopify_api, "graphql_request",
        lambda *args, **kwargs: {"data": {"nodes": [
            {"id": "gid://shopify/Customer/1", "firstName": "Hanako", "lastName": "Tanaka", "email": "h@example.com"},
            {"id": "gid://shopify/Customer/2", "firstName": None, "lastName": None, "email": None},
            None,
        ]}},
    )
    customers = shopify_api.fetch_customers_by_ids(SHOP, TOKEN, ["1", "2", "3"])
    assert customers["1"] == {"name": "Tanaka Hanako", "email": "h@example.com"}
    assert customers["2"] == {"name": "Restricted", "email": "Restricted"}


def test_register_webhooks_tolerates_existing(monkeypatch):
    topics = []

    def fake_graphql(shop, token, query, variables=None):
        topics.append(variables["topic"])
        if variables["topic"] == "APP_UNINSTALLED":
            return {"data": {"webhookSubscriptionCreate": {"userErrors": [{"message": "Address for this topic has already been taken"}]}}}
        return {"data": {"webhookSubscriptionCreate": {"webhookSubscription": {"id": "1"}, "userErrors": []}}}

    monkeypatch.setattr(shopify_api, "graphql_request", fake_graphql)
    created = shopify_api.register_webhooks(SHOP, TOKEN)

    assert topics == ["INVENTORY_LEVELS_UPDATE", "ORDERS_CREATE", "APP_UNINSTALLED"]
    assert created == ["INVENTORY_LEVELS_UPDATE", "ORDERS_CREATE"]


def test_create_app_subscription_user_errors(monkeypatch):
    monkeypatch.setattr(
        shopify_api, "graphql_request",
        lambda *args, **kwargs: {"data": {"appSubscriptionCreate": {"userErrors": [{"message": "Invalid"}]}}},
    )
    with pytest.raises(shopify_api.ShopifyAPIError):
        shopify_api.create_app_subscription(SHOP, TOKEN, "Pro Plan", 24.99, "USD", 30, "https://x", True)
