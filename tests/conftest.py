import base64
import hashlib
import hmac
import json
import os
import time
from urllib.parse import urlencode

import jwt
import pytest

os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
os.environ["SHOPIFY_APP_URL"] = "https://wishflow.example.com"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RESEND_API_KEY"] = "re_test_key"
os.environ["SECRET_KEY"] = "test-secret-key"

import app as app_module  # noqa: E402
import mailer  # noqa: E402
from models import db, StoreToken  # noqa: E402

SECRET = "test-api-secret"
SHOP = "test-shop.myshopify.com"
TOKEN = "shpat_test_token"


@pytest.fixture
def app():
    flask_app = app_module.app
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def installed_shop(app):
    db.session.add(StoreToken(shop=SHOP, access_token=TOKEN, scope="read_products"))
    db.session.commit()
    return SHOP


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing mail instead of calling Resend."""
    sent = []

    def fake_send_email(to, subject, html, sender_name=None):
        sent.append({"to": to, "subject": subject, "html": html, "sender_name": sender_name})
        return f"msg_{len(sent)}"

    monkeypatch.setattr(mailer, "send_email", fake_send_email)
    return sent


@pytest.fixture
def sync_background(monkeypatch):
    """Run fire-and-forget work inline so tests can observe it."""
    monkeypatch.setattr(app_module, "run_in_background", lambda target, *args: target(*args))


def proxy_query(shop=SHOP, **extra):
    params = {
        "shop": shop,
        "path_prefix": "/apps/wishflow",
        "timestamp": str(int(time.time())),
        "logged_in_customer_id": "",
    }
    params.update(extra)
    message = "".join(f"{key}={params[key]}" for key in sorted(params))
    params["signature"] = hmac.new(SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()
    return urlencode(params)


def webhook_headers(body, topic, shop=SHOP):
    digest = hmac.new(SECRET.encode(), body, hashlib.sha256).digest()
    return {
        "X-Shopify-Hmac-Sha256": base64.b64encode(digest).decode(),
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": shop,
        "Content-Type": "application/json",
    }


def post_webhook(client, topic, payload, shop=SHOP):
    body = json.dumps(payload).encode()
    return client.post("/api/webhooks", data=body, headers=webhook_headers(body, topic, shop))


def session_token(shop=SHOP, **overrides):
    now = int(time.time())
    claims = {
        "iss": f"https://{shop}/admin",
        "dest": f"https://{shop}",
        "aud": "test-api-key",
        "sub": "1",
        "exp": now + 60,
        "nbf": now - 5,
        "iat": now,
    }
    claims.update(overrides)
    return jwt.encode(claims, SECRET, algorithm="HS256")


def admin_headers(shop=SHOP):
    return {"Authorization": f"Bearer {session_token(shop)}"}
