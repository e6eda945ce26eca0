import base64
import hashlib
import hmac
import json
import logging
import re
from urllib.parse import urlencode, urlparse

import jwt
import requests

import config

logger = logging.getLogger(__name__)

SHOP_DOMAIN_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-]*\.myshopify\.com$")

WISHLIST_NAMESPACE = "custom"
WISHLIST_KEY = "wishlist"


class ShopifyAPIError(Exception):
    pass


def customer_gid(customer_id):
    return f"gid://shopify/Customer/{customer_id}"


def numeric_id(gid):
    return str(gid).split("/")[-1]


def normalize_shop(shop):
    if not shop:
        return None
    d = shop.strip().lower().replace("http://", "").replace("https://", "")
    return d.split("/")[0]


def is_valid_shop_domain(shop):
    return bool(shop) and bool(SHOP_DOMAIN_RE.match(shop))


def graphql_request(shop, token, query, variables=None):
    """
    Send a GraphQL query/mutation to the Shopify Admin API.

    Raises ShopifyAPIError on network failures and non-200 responses.
    GraphQL-level "errors" are returned to the caller untouched.
    """
    url = f"https://{shop}/admin/api/{config.SHOPIFY_API_VERSION}/graphql.json"
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Access-Token": token,
    }
    payload = {"query": query}
    if variables:
        payload["variables"] = variables

    try:
        resp = requests.post(url, headers=headers, json=payload, timeout=config.REQUEST_TIMEOUT)
    except requests.exceptions.RequestException as e:
        logger.error("GraphQL request to %s failed: %s", shop, e)
        raise ShopifyAPIError(f"Request failed: {e}") from e

    if resp.status_code != 200:
        logger.error("GraphQL query failed with status %s: %s", resp.status_code, resp.text[:200])
        raise ShopifyAPIError(f"GraphQL query failed with status {resp.status_code}: {resp.text[:200]}")

    return resp.json()


# ---------------- VERIFICATION ----------------

def verify_webhook_hmac(raw_body, hmac_header):
    if not hmac_header or not config.SHOPIFY_API_SECRET:
        return False
    digest = hmac.new(
        config.SHOPIFY_API_SECRET.encode("utf-8"),
        raw_body,
        hashlib.sha256,
    ).digest()
    calculated = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(calculated, hmac_header)


def app_proxy_message(params):
    """
    params: mapping of key -> list of values (werkzeug MultiDict.to_dict(flat=False)).
    """
    parts = []
    for key in sorted(k for k in params if k != "signature"):
        values = params[key]
        if isinstance(values, (list, tuple)):
            values = ",".join(values)
        parts.append(f"{key}={values}")
    return "".join(parts)


def verify_app_proxy_signature(params):
    signature = params.get("signature")
    if isinstance(signature, (list, tuple)):
        signature = signature[0] if signature else None
    if not signature or not config.SHOPIFY_API_SECRET:
        return False

    calculated = hmac.new(
        config.SHOPIFY_API_SECRET.encode("utf-8"),
        app_proxy_message(params).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(calculated, signature)


def verify_oauth_hmac(params):
    hmac_value = params.get("hmac")
    if not hmac_value or not config.SHOPIFY_API_SECRET:
        return False
    message = "&".join(
        f"{key}={params[key]}" for key in sorted(params) if key not in ("hmac", "signature")
    )
    calculated = hmac.new(
        config.SHOPIFY_API_SECRET.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(calculated, hmac_value)


def verify_id_token(id_token):
    return jwt.decode(
        id_token,
        config.SHOPIFY_API_SECRET,
        algorithms=["HS256"],
        audience=config.SHOPIFY_API_KEY,
        options={"verify_exp": True},
    )


def shop_from_id_token(claims):
    dest = claims.get("dest") or ""
    return normalize_shop(urlparse(dest).netloc or dest)


# ---------------- OAUTH ----------------

def build_authorize_url(shop, state):
    query = urlencode({
        "client_id": config.SHOPIFY_API_KEY,
        "scope": config.SCOPES,
        "redirect_uri": f"{config.SHOPIFY_APP_URL}/auth/callback",
        "state": state,
    })
    return f"https://{shop}/admin/oauth/authorize?{query}"


def exchange_code_for_token(shop, code):
    token_url = f"https://{shop}/admin/oauth/access_token"
    payload = {
        "client_id": config.SHOPIFY_API_KEY,
        "client_secret": config.SHOPIFY_API_SECRET,
        "code": code,
    }
    try:
        response = requests.post(token_url, json=payload, timeout=config.REQUEST_TIMEOUT)
    except requests.exceptions.RequestException as e:
        raise ShopifyAPIError(f"Token exchange failed: {e}") from e

    if response.status_code != 200:
        raise ShopifyAPIError(f"Error retrieving access token: HTTP {response.status_code}")

    return response.json()


def register_webhooks(shop, token):
    """Subscribe the app to every topic in config.WEBHOOK_TOPICS. Returns created topics."""
    mutation = """
    mutation webhookSubscriptionCreate($topic: WebhookSubscriptionTopic!, $webhookSubscription: WebhookSubscriptionInput!) {
      webhookSubscriptionCreate(topic: $topic, webhookSubscription: $webhookSubscription) {
        webhookSubscription { id topic }
        userErrors { field message }
      }
    }
    """
    callback_url = f"{config.SHOPIFY_APP_URL}/api/webhooks"
    created = []

    for topic in config.WEBHOOK_TOPICS:
        variables = {
            "topic": topic,
            "webhookSubscription": {"callbackUrl": callback_url, "format": "JSON"},
        }
        response = graphql_request(shop, token, mutation, variables)
        result = (response.get("data") or {}).get("webhookSubscriptionCreate") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            # "Address for this topic has already been taken" on reinstall
            logger.warning("Webhook %s for %s not created: %s", topic, shop, user_errors)
            continue
        created.append(topic)

    logger.info("Registered webhooks for %s: %s", shop, created)
    return created


# ---------------- CUSTOMER WISHLIST ----------------

def fetch_customer_wishlist_value(shop, token, customer_id):
    query = """
    query getCustomer($id: ID!) {
      customer(id: $id) {
        metafield(namespace: "custom", key: "wishlist") {
          value
        }
      }
    }
    """
    response = graphql_request(shop, token, query, {"id": customer_gid(customer_id)})
    customer = (response.get("data") or {}).get("customer") or {}
    metafield = customer.get("metafield") or {}
    return metafield.get("value")


def save_customer_wishlist(shop, token, customer_id, handles):
    """Write the wishlist metafield. Returns the list of userErrors (empty on success)."""
    mutation = """
    mutation customerUpdate($input: CustomerInput!) {
      customerUpdate(input: $input) {
        customer { id }
        userErrors { field message }
      }
    }
    """
    variables = {
        "input": {
            "id": customer_gid(customer_id),
            "metafields": [
                {
                    "namespace": WISHLIST_NAMESPACE,
                    "key": WISHLIST_KEY,
                    "type": "json",
                    "value": json.dumps(handles),
                }
            ],
        }
    }
    response = graphql_request(shop, token, mutation, variables)
    if "errors" in response:
        return response["errors"]
    return ((response.get("data") or {}).get("customerUpdate") or {}).get("userErrors") or []


# ---------------- PRODUCTS ----------------

def fetch_product_by_handle(shop, token, handle):
    query = """
    query getProductDetails($handle: String!) {
      productByHandle(handle: $handle) {
        title
        featuredImage { url }
      }
    }
    """
    response = graphql_request(shop, token, query, {"handle": handle})
    return (response.get("data") or {}).get("productByHandle")


def fetch_variant_by_inventory_item(shop, token, inventory_item_id):
    query = """
    query getProductByInventoryItem($id: ID!) {
      inventoryItem(id: $id) {
        variant { id product { handle title } }
      }
    }
    """
    variables = {"id": f"gid://shopify/InventoryItem/{inventory_item_id}"}
    response = graphql_request(shop, token, query, variables)
    item = (response.get("data") or {}).get("inventoryItem") or {}
    return item.get("variant")


def fetch_products_by_handles(shop, token, handles):
    """
    Returns (product_meta, variant_skus):
      product_meta: {handle: {"title": ..., "image_url": ...}}
      variant_skus: {numeric variant id: sku}
    Only the first 50 handles are looked up.
    """
    product_meta = {}
    variant_skus = {}
    query_str = " OR ".join(f"handle:{h}" for h in handles[:50])
    if not query_str:
        return product_meta, variant_skus

    query = """
    query getProducts($query: String!) {
      products(first: 50, query: $query) {
        edges {
          node {
            handle
            title
            featuredImage { url }
            variants(first: 50) { edges { node { id sku } } }
          }
        }
      }
    }
    """
    response = graphql_request(shop, token, query, {"query": query_str})
    edges = ((response.get("data") or {}).get("products") or {}).get("edges") or []
    for edge in edges:
        node = edge["node"]
        product_meta[node["handle"]] = {
            "title": node.get("title"),
            "image_url": (node.get("featuredImage") or {}).get("url") or "",
        }
        for variant_edge in (node.get("variants") or {}).get("edges") or []:
            variant = variant_edge["node"]
            variant_skus[numeric_id(variant["id"])] = variant.get("sku") or ""

    return product_meta, variant_skus


def fetch_customers_by_ids(shop, token, customer_ids):
    """
    Returns {numeric id: {"name": ..., "email": ...}}.
    Raises ShopifyAPIError when Shopify refuses the query (protected customer data).
    """
    customers = {}
    ids = [customer_gid(cid) for cid in customer_ids[:50]]
    if not ids:
        return customers

    query = """
    query getCustomers($ids: [ID!]!) {
      nodes(ids: $ids) { ... on Customer { id firstName lastName email } }
    }
    """
    response = graphql_request(shop, token, query, {"ids": ids})
    if response.get("errors"):
        raise ShopifyAPIError(f"Customer query refused: {response['errors']}")

    for node in (response.get("data") or {}).get("nodes") or []:
        if not node or not node.get("id"):
            continue
        full_name = f"{node.get('lastName') or ''} {node.get('firstName') or ''}".strip()
        customers[numeric_id(node["id"])] = {
            "name": full_name or "Restricted",
            "email": node.get("email") or "Restricted",
        }
    return customers


# ---------------- SHOP ----------------

def fetch_shop_info(shop, token):
    response = graphql_request(shop, token, "{ shop { id currencyCode } }")
    return (response.get("data") or {}).get("shop") or {}


def set_shop_metafield(shop, token, namespace, key, value):
    shop_id = fetch_shop_info(shop, token).get("id")
    if not shop_id:
        raise ShopifyAPIError("Shop id not returned")

    mutation = """
    mutation setMetafield($input: MetafieldsSetInput!) {
      metafieldsSet(metafields: [$input]) {
        userErrors { message }
      }
    }
    """
    variables = {
        "input": {
            "namespace": namespace,
            "key": key,
            "ownerId": shop_id,
            "type": "single_line_text_field",
            "value": str(value),
        }
    }
    response = graphql_request(shop, token, mutation, variables)
    user_errors = ((response.get("data") or {}).get("metafieldsSet") or {}).get("userErrors") or []
    if user_errors:
        raise ShopifyAPIError(f"metafieldsSet errors: {user_errors}")
    return response


# ---------------- BILLING ----------------

def fetch_active_subscriptions(shop, token):
    query = """
    query {
      currentAppInstallation {
        activeSubscriptions { name status }
      }
    }
    """
    response = graphql_request(shop, token, query)
    installation = (response.get("data") or {}).get("currentAppInstallation") or {}
    return installation.get("activeSubscriptions") or []


def create_app_subscription(shop, token, name, amount, currency_code, trial_days, return_url, test):
    mutation = """
    mutation appSubscriptionCreate($name: String!, $lineItems: [AppSubscriptionLineItemInput!]!, $returnUrl: URL!, $trialDays: Int, $test: Boolean) {
      appSubscriptionCreate(name: $name, lineItems: $lineItems, returnUrl: $returnUrl, trialDays: $trialDays, test: $test) {
        appSubscription { id }
        confirmationUrl
        userErrors { field message }
      }
    }
    """
    variables = {
        "name": name,
        "returnUrl": return_url,
        "trialDays": trial_days,
        "test": test,
        "lineItems": [
            {
                "plan": {
                    "appRecurringPricingDetails": {
                        "price": {"amount": amount, "currencyCode": currency_code},
                        "interval": "EVERY_30_DAYS",
                    }
                }
            }
        ],
    }
    response = graphql_request(shop, token, mutation, variables)
    result = (response.get("data") or {}).get("appSubscriptionCreate") or {}
    if response.get("errors") or result.get("userErrors"):
        raise ShopifyAPIError(
            f"appSubscriptionCreate failed: {response.get('errors') or result.get('userErrors')}"
        )
    return result.get("confirmationUrl")
