import logging
import threading
import uuid
from datetime import datetime
from functools import wraps
from urllib.parse import urlencode

import click
import jwt
from flask import Flask, Response, g, jsonify, redirect, render_template_string, request, session
from flask_cors import CORS

import analytics
import billing
import config
import mailer
import restock
import shopify_api
import wishlist
from models import db, EmailSetting, StoreToken, get_access_token_for_shop

# Configure logging
log_handlers = [logging.StreamHandler()]
if config.LOG_FILE:
    log_handlers.append(logging.FileHandler(config.LOG_FILE))

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format=config.LOG_FORMAT,
    handlers=log_handlers,
)

app = Flask(__name__)
app.config["SECRET_KEY"] = config.SECRET_KEY
app.config["SQLALCHEMY_DATABASE_URI"] = config.DATABASE_URL
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

db.init_app(app)

# Storefront endpoints are called from theme scripts on any shop domain
STOREFRONT_CORS = {"origins": "*", "methods": ["GET", "POST", "OPTIONS"], "allow_headers": ["Content-Type"]}
CORS(app, resources={
    r"^/$": STOREFRONT_CORS,
    r"^/api/(wishlist|remove)$": STOREFRONT_CORS,
    r"^/(save|notify|sync)$": STOREFRONT_CORS,
})

ACTION_MESSAGES = {
    "ja": {
        "sync": "同期をリフレッシュしました",
        "test_sent": "宛にテストメールを送信しました",
        "test_error": "送信先メールアドレスが入力されていません",
        "test_fail": "送信エラー: ",
        "saved": "設定を保存しました",
        "founder_empty": "招待コードを入力してください",
        "founder_invalid": "無効な招待コードです",
        "founder_full": "申し訳ありません。この招待枠はすでに定員に達しています",
        "founder_already_has": "すでにFounderプランが適用されています",
        "founder_success": "🎉 Founderプランが適用されました！全機能を永久無料でご利用いただけます。",
    },
    "en": {
        "sync": "Synchronization refreshed",
        "test_sent": "Test email sent to ",
        "test_error": "Please enter an email address",
        "test_fail": "Sending failed: ",
        "saved": "Settings saved",
        "founder_empty": "Please enter an invite code",
        "founder_invalid": "Invalid code",
        "founder_full": "Sorry, this campaign is full",
        "founder_already_has": "You already have the Founder plan",
        "founder_success": "🎉 Founder plan applied! All features are yours forever for free.",
    },
    "zh": {
        "sync": "同步已刷新",
        "test_sent": "測試郵件已發送至 ",
        "test_error": "請輸入電子郵件地址",
        "test_fail": "發送失敗: ",
        "saved": "設置已保存",
        "founder_empty": "请输入邀请码",
        "founder_invalid": "无效的邀请码",
        "founder_full": "抱歉，该活动名额已满",
        "founder_already_has": "您已开通创始人计划",
        "founder_success": "🎉 创始人计划已应用！所有功能永久免费。",
    },
    "fr": {
        "sync": "Synchronisation actualisée",
        "test_sent": "E-mail de test envoyé à ",
        "test_error": "Veuillez entrer une adresse e-mail",
        "test_fail": "Échec de l'envoi: ",
        "saved": "Paramètres enregistrés",
        "founder_empty": "Veuillez entrer un code d'invitation",
        "founder_invalid": "Code invalide",
        "founder_full": "Désolé, cette campagne est complète",
        "founder_already_has": "Vous avez déjà le plan Founder",
        "founder_success": "🎉 Plan Founder appliqué ! Toutes les fonctionnalités sont gratuites à vie.",
    },
    "de": {
        "sync": "Synchronisierung aktualisiert",
        "test_sent": "Test-E-Mail gesendet an ",
        "test_error": "Bitte geben Sie eine E-Mail-Adresse ein",
        "test_fail": "Senden fehlgeschlagen: ",
        "saved": "Einstellungen gespeichert",
        "founder_empty": "Bitte geben Sie einen Einladungscode ein",
        "founder_invalid": "Ungültiger Code",
        "founder_full": "Entschuldigung, diese Kampagne ist voll",
        "founder_already_has": "Sie haben bereits den Founder-Plan",
        "founder_success": "🎉 Founder-Plan angewendet! Alle Funktionen sind dauerhaft kostenlos.",
    },
    "es": {
        "sync": "Sincronización actualizada",
        "test_sent": "Correo de prueba enviado a ",
        "test_error": "Por favor, introduzca una dirección de correo",
        "test_fail": "El envío falló: ",
        "saved": "Configuración guardada",
        "founder_empty": "Por favor, introduzca un código de invitación",
        "founder_invalid": "Código inválido",
        "founder_full": "Lo sentimos, esta campaña está llena",
        "founder_already_has": "Ya tienes el plan Founder",
        "founder_success": "🎉 ¡Plan Founder aplicado! Todas las funciones son gratuitas para siempre.",
    },
}

FOUNDER_MESSAGE_KEYS = {
    billing.FOUNDER_EMPTY: "founder_empty",
    billing.FOUNDER_INVALID: "founder_invalid",
    billing.FOUNDER_FULL: "founder_full",
    billing.FOUNDER_ALREADY: "founder_already_has",
    billing.FOUNDER_SUCCESS: "founder_success",
}

LOGIN_PAGE = """
<!doctype html>
<html>
  <head><title>WishFlow</title></head>
  <body>
    <h1>WishFlow</h1>
    <form method="get" action="/auth">
      <label>Shop domain <input type="text" name="shop" placeholder="example.myshopify.com"></label>
      <button type="submit">Log in</button>
    </form>
  </body>
</html>
"""


def run_in_background(target, *args):
    """Fire-and-forget: run target(*args) in a daemon thread with an app context."""
    def runner():
        with app.app_context():
            try:
                target(*args)
            except Exception:
                logging.exception("Background task %s failed", getattr(target, "__name__", target))

    threading.Thread(target=runner, daemon=True).start()


def request_data():
    """JSON body or form fields, whichever the client sent."""
    return request.get_json(silent=True) or request.form.to_dict() or {}


# ---------------- AUTH DECORATORS ----------------

def app_proxy_required(f):
    """Storefront requests arrive through the App Proxy and carry a signature."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not shopify_api.verify_app_proxy_signature(request.args.to_dict(flat=False)):
            app.logger.warning("App proxy signature check failed for %s", request.path)
            return jsonify({"error": "Unauthorized"}), 401

        g.shop = shopify_api.normalize_shop(request.args.get("shop"))
        g.access_token = get_access_token_for_shop(g.shop) if g.shop else None
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Embedded admin requests carry an App Bridge session token."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        id_token = auth_header[7:] if auth_header.startswith("Bearer ") else request.args.get("id_token")
        if not id_token:
            return jsonify({"error": "Missing session token"}), 401

        try:
            claims = shopify_api.verify_id_token(id_token)
        except jwt.InvalidTokenError as e:
            app.logger.warning("Invalid session token: %s", e)
            return jsonify({"error": "Invalid session token"}), 401

        shop = shopify_api.shop_from_id_token(claims)
        access_token = get_access_token_for_shop(shop)
        if not access_token:
            return jsonify({
                "error": "Store not registered",
                "reauthorize_url": f"/auth?{urlencode({'shop': shop})}",
            }), 401

        g.shop = shop
        g.access_token = access_token
        return f(*args, **kwargs)
    return decorated_function


# ---------------- ERROR HANDLERS ----------------

@app.errorhandler(400)
def bad_request(error):
    return jsonify({"error": "Bad Request", "message": str(error.description)}), 400


@app.errorhandler(404)
def not_found(error):
    return jsonify({"error": "Not Found", "message": "The requested resource was not found"}), 404


@app.errorhandler(405)
def method_not_allowed(error):
    return jsonify({"error": "Method not allowed"}), 405


@app.errorhandler(500)
def internal_error(error):
    app.logger.error(f"Internal error: {error}")
    return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500


# ---------------- OAUTH ----------------

@app.route("/", methods=["GET"])
def home():
    # Opened from the Shopify admin: hand over to the embedded app
    if request.args.get("shop"):
        return redirect(f"/app?{urlencode(request.args)}")
    return render_template_string(LOGIN_PAGE)


@app.route("/auth")
def authenticate():
    shop = shopify_api.normalize_shop(request.args.get("shop"))
    if not shopify_api.is_valid_shop_domain(shop):
        return jsonify({"error": "Missing or invalid shop parameter"}), 400

    state = uuid.uuid4().hex
    session["oauth_state"] = state
    return redirect(shopify_api.build_authorize_url(shop, state))


@app.route("/auth/callback")
def auth_callback():
    shop = shopify_api.normalize_shop(request.args.get("shop"))
    code = request.args.get("code")

    if not shop or not code:
        return jsonify({"error": "Invalid request"}), 400

    if not shopify_api.verify_oauth_hmac(request.args.to_dict()):
        return jsonify({"error": "HMAC verification failed"}), 401

    if request.args.get("state") != session.pop("oauth_state", None):
        return jsonify({"error": "Invalid OAuth state"}), 400

    try:
        token_data = shopify_api.exchange_code_for_token(shop, code)
    except shopify_api.ShopifyAPIError as e:
        app.logger.error(f"Token exchange failed for {shop}: {e}")
        return jsonify({"error": "Error retrieving access token"}), 400

    access_token = token_data.get("access_token")

    # Save token to DB
    store = StoreToken.query.filter_by(shop=shop).first()
    if store:
        store.access_token = access_token
        store.scope = token_data.get("scope")
    else:
        store = StoreToken(shop=shop, access_token=access_token, scope=token_data.get("scope"))
        db.session.add(store)
    db.session.commit()
    app.logger.info(f"Stored access token for {shop}")

    try:
        shopify_api.register_webhooks(shop, access_token)
    except shopify_api.ShopifyAPIError as e:
        app.logger.error(f"Webhook registration failed for {shop}: {e}")

    return redirect(f"https://{shop}/admin/apps/{config.SHOPIFY_API_KEY}")


# ---------------- STOREFRONT (APP PROXY) ----------------

@app.route("/", methods=["POST"])
@app_proxy_required
def toggle_favorite():
    if not g.access_token:
        return jsonify({"error": "Unauthorized"}), 401

    data = request.get_json(silent=True) or {}
    customer_id = data.get("customerId")
    handle = data.get("productHandle") or data.get("productId")

    if not handle:
        return jsonify({"error": "No handle"}), 400
    if not customer_id:
        return jsonify({"error": "No customer"}), 400

    try:
        new_list, _ = wishlist.toggle_wishlist(g.shop, g.access_token, customer_id, handle)
        return jsonify({"success": True, "wishlist": new_list})
    except (wishlist.WishlistSaveError, shopify_api.ShopifyAPIError) as e:
        app.logger.error(f"Favorite toggle failed: {e}")
        return jsonify({"error": str(e)}), 500


@app.route("/api/wishlist", methods=["GET"])
def wishlist_status():
    return jsonify({"status": "ok"})


@app.route("/api/wishlist", methods=["POST"])
@app_proxy_required
def wishlist_action():
    if not g.access_token:
        app.logger.error("Auth failed: no access token for %s", g.shop)
        return jsonify({"error": "Unauthorized"}), 401

    data = request.get_json(silent=True) or {}
    customer_id = data.get("customerId")
    handle = data.get("productHandle")

    if not customer_id or not handle:
        app.logger.error("Missing params: customerId=%s productHandle=%s", customer_id, handle)
        return jsonify({"error": "Missing data"}), 400

    try:
        new_list, action = wishlist.toggle_wishlist(
            g.shop,
            g.access_token,
            customer_id,
            handle,
            mode=data.get("mode"),
            referrer=data.get("referrer"),
        )
    except wishlist.WishlistSaveError as e:
        return jsonify({"error": "Save failed", "details": e.user_errors}), 500
    except shopify_api.ShopifyAPIError as e:
        app.logger.error(f"Wishlist critical error: {e}")
        return jsonify({"error": "Server Error", "details": str(e)}), 500

    return jsonify({"success": True, "list": new_list, "action": action})


@app.route("/api/remove", methods=["POST"])
@app_proxy_required
def wishlist_remove():
    if not g.access_token:
        return jsonify({"error": "Unauthorized"}), 401

    data = request.get_json(silent=True) or {}
    customer_id = data.get("customerId")
    handle = data.get("productHandle")
    if not customer_id or not handle:
        return jsonify({"error": "Missing data"}), 400

    try:
        wishlist.remove_from_wishlist(g.shop, g.access_token, customer_id, handle)
        wishlist.mirror_favorite(g.shop, customer_id, handle, wishlist.REMOVED)
    except (wishlist.WishlistSaveError, shopify_api.ShopifyAPIError) as e:
        app.logger.error(f"Remove failed: {e}")
        return jsonify({"error": "Remove Error"}), 500

    return jsonify({"success": True})


@app.route("/save", methods=["GET"])
def save_status():
    return jsonify({"status": "API Ready"})


@app.route("/save", methods=["POST"])
@app_proxy_required
def save_favorite():
    if not g.access_token:
        return jsonify({"success": False, "error": "Unauthorized"}), 401

    data = request.get_json(silent=True) or {}
    customer_id = data.get("customerId")
    product_id = data.get("productId")

    try:
        if not customer_id or not product_id:
            raise ValueError("Missing customerId or productId")
        saved = wishlist.add_to_wishlist(g.shop, g.access_token, customer_id, product_id)
        app.logger.info(f"Saved favorite: customer {customer_id} product {product_id}")
        return jsonify({"success": True, "wishlist": saved})
    except (ValueError, wishlist.WishlistSaveError, shopify_api.ShopifyAPIError) as e:
        app.logger.error(f"Save failed: {e}")
        # Theme script shows an error page on non-200 responses
        return jsonify({"success": False, "error": str(e)}), 200


@app.route("/notify", methods=["POST"])
@app_proxy_required
def notify():
    shop = g.shop
    if not shop:
        return jsonify({"status": "error", "message": "Unauthorized: Missing shop"}), 401

    data = request.get_json(silent=True) or {}
    product_handle = data.get("productHandle")
    customer_email = data.get("customerEmail")
    variant_id = data.get("variantId")

    if data.get("actionType") == "delete":
        try:
            restock.delete_requests(shop, product_handle, variant_id, customer_email)
            return jsonify({"success": True})
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Notify delete DB error: {e}")
            return jsonify({"error": "Delete failed"}), 500

    if not product_handle or not customer_email:
        return jsonify({"error": "Missing data"}), 400

    # Registration comes first so it succeeds even when the email limit is reached
    try:
        restock.register_request(shop, product_handle, variant_id, customer_email, data.get("referrer"))
    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Notify create DB error: {e}")

    if mailer.is_configured():
        run_in_background(restock.send_confirmation, shop, g.access_token, product_handle, customer_email)

    return jsonify({"success": True})


@app.route("/sync", methods=["POST"])
@app_proxy_required
def sync():
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    customer_email = data.get("customerEmail")
    shop = g.shop

    if not shop or not customer_email or not isinstance(items, list):
        return jsonify({"error": "Invalid data"}), 400

    try:
        created = restock.sync_requests(shop, customer_email, items)
    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Sync error: {e}")
        return jsonify({"error": "Server Error"}), 500

    return jsonify({"success": True, "message": "Sync complete", "created": created})


# ---------------- WEBHOOKS ----------------

@app.route("/api/webhooks", methods=["POST"])
def webhooks():
    raw_body = request.get_data()
    if not shopify_api.verify_webhook_hmac(raw_body, request.headers.get("X-Shopify-Hmac-Sha256")):
        app.logger.warning("Webhook HMAC verification failed")
        return jsonify({"error": "Unauthorized"}), 401

    topic = (request.headers.get("X-Shopify-Topic") or "").lower()
    shop = shopify_api.normalize_shop(request.headers.get("X-Shopify-Shop-Domain"))
    payload = request.get_json(silent=True) or {}
    access_token = get_access_token_for_shop(shop)

    # No stored token means the app is not installed for this shop
    if not access_token and topic != "shop/redact":
        return "", 200

    if topic == "orders/create":
        try:
            restock.record_conversions(shop, payload)
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Error processing orders/create: {e}")

    elif topic == "inventory_levels/update":
        try:
            restock.process_inventory_update(shop, access_token, payload)
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Error processing inventory_levels/update: {e}")

    elif topic == "app/uninstalled":
        StoreToken.query.filter_by(shop=shop).delete(synchronize_session=False)
        db.session.commit()
        app.logger.info(f"App uninstalled from {shop}; token removed")

    elif topic in ("customers/data_request", "customers/redact", "shop/redact"):
        pass

    else:
        return "Unhandled webhook topic", 404

    return "", 200


# ---------------- ADMIN: DASHBOARD ----------------

@app.route("/app")
@admin_required
def dashboard():
    try:
        return jsonify(analytics.dashboard_summary(g.shop, g.access_token))
    except Exception as e:
        app.logger.error(f"Dashboard error for {g.shop}: {e}")
        return jsonify({"error": "Unexpected error", "details": str(e)}), 500


# ---------------- ADMIN: SETTINGS ----------------

@app.route("/app/additional", methods=["GET"])
@admin_required
def settings_page():
    settings = EmailSetting.query.filter_by(shop=g.shop).first()
    usage = billing.get_or_create_usage(g.shop)
    campaign = billing.ensure_founder_campaign()

    return jsonify({
        "settings": settings.to_dict() if settings else {},
        "shop": g.shop,
        "is_founder": usage.is_founder,
        "current_plan": usage.plan or "free",
        "campaign": {
            "total_slots": campaign.total_slots,
            "used_slots": campaign.used_slots,
            "is_active": campaign.is_active,
        },
    })


@app.route("/app/additional", methods=["POST"])
@admin_required
def settings_action():
    data = request_data()
    intent = data.get("intent")
    language = data.get("language") or "ja"
    msgs = ACTION_MESSAGES.get(language) or ACTION_MESSAGES["ja"]

    if intent == "apply_founder_code":
        try:
            result = billing.apply_founder_code(g.shop, data.get("founder_code"))
        except Exception as e:
            app.logger.error(f"Founder code error for {g.shop}: {e}")
            return jsonify({"success": False, "message": "System Error"})
        return jsonify({
            "success": result == billing.FOUNDER_SUCCESS,
            "message": msgs[FOUNDER_MESSAGE_KEYS[result]],
        })

    if intent == "sync":
        try:
            shopify_api.register_webhooks(g.shop, g.access_token)
        except shopify_api.ShopifyAPIError as e:
            app.logger.error(f"Webhook sync failed for {g.shop}: {e}")
            return jsonify({"success": False, "message": "System Error"})
        return jsonify({"success": True, "message": msgs["sync"]})

    if intent == "test_email":
        return send_test_email(data, language, msgs)

    if intent in ("save_language", "save_email", "toggle_system"):
        save_email_settings(data)

        if intent == "save_language":
            try:
                shopify_api.set_shop_metafield(
                    g.shop, g.access_token, "wishflow_settings", "language", language
                )
            except shopify_api.ShopifyAPIError as e:
                app.logger.error(f"Metafield update failed: {e}")

        return jsonify({"success": True, "message": msgs["saved"]})

    return jsonify({"success": False, "message": f"Unknown intent: {intent}"}), 400


def save_email_settings(data):
    """Upsert EmailSetting with only the fields present in the submitted form."""
    settings = EmailSetting.query.filter_by(shop=g.shop).first()
    if settings is None:
        settings = EmailSetting(shop=g.shop, language="ja", is_restock_enabled=True)
        db.session.add(settings)

    field_map = {
        "senderName": "sender_name",
        "subject": "subject",
        "body": "body",
        "restockSubject": "restock_subject",
        "restockBody": "restock_body",
        "language": "language",
    }
    for form_key, column in field_map.items():
        if form_key in data:
            setattr(settings, column, data.get(form_key))

    if "isRestockEnabled" in data:
        value = data.get("isRestockEnabled")
        settings.is_restock_enabled = value is True or str(value).lower() == "true"

    db.session.commit()
    return settings


def send_test_email(data, language, msgs):
    target_email = data.get("test_email_to")
    if not target_email:
        return jsonify({"success": False, "message": msgs["test_error"]})

    if not mailer.is_configured():
        app.logger.error("RESEND_API_KEY is missing")
        return jsonify({"success": False, "message": "System Error: RESEND_API_KEY is not configured"})

    sender_name = config.DEFAULT_SENDER_NAME
    try:
        settings = EmailSetting.query.filter_by(shop=g.shop).first()
        if settings and settings.sender_name:
            sender_name = settings.sender_name
    except Exception as e:
        db.session.rollback()
        app.logger.error(f"DB fetch error in test_email: {e}")

    subject, html = mailer.build_test_email(language, sender_name)
    try:
        mailer.send_email(target_email, subject, html, sender_name)
    except mailer.MailerError as e:
        app.logger.error(f"Test email failed: {e}")
        return jsonify({"success": False, "message": f"{msgs['test_fail']} {e}"})

    return jsonify({"success": True, "message": f"{msgs['test_sent']}{target_email}"})


# ---------------- ADMIN: ANALYSIS ----------------

def analysis_args():
    return (
        request.args.get("period") or "7",
        request.args.get("start"),
        request.args.get("end"),
    )


@app.route("/app/analysis")
@admin_required
def analysis():
    usage = billing.get_or_create_usage(g.shop)
    if not billing.is_pro_unlocked(usage):
        return redirect("/app/pricing")

    period, start, end = analysis_args()
    try:
        return jsonify(analytics.build_analysis(g.shop, g.access_token, period, start, end))
    except ValueError as e:
        return jsonify({"error": "Invalid period", "details": str(e)}), 400


@app.route("/app/analysis/export")
@admin_required
def analysis_export():
    usage = billing.get_or_create_usage(g.shop)
    if not billing.is_pro_unlocked(usage):
        return redirect("/app/pricing")

    period, start, end = analysis_args()
    try:
        result = analytics.build_analysis(g.shop, g.access_token, period, start, end)
    except ValueError as e:
        return jsonify({"error": "Invalid period", "details": str(e)}), 400

    filename = f"wishflow-analysis-{datetime.now().strftime('%Y%m%d')}.csv"
    return Response(
        analytics.export_csv(result["raw_detailed_data"]),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ---------------- ADMIN: PRICING ----------------

@app.route("/app/pricing", methods=["GET"])
@admin_required
def pricing():
    has_standard = False
    has_pro = False

    try:
        names = billing.fetch_active_subscription_names(g.shop, g.access_token)
        has_standard = config.MONTHLY_PLAN_STANDARD in names
        has_pro = config.MONTHLY_PLAN_PRO in names
        usage = billing.sync_plan_from_subscriptions(g.shop, names)
    except shopify_api.ShopifyAPIError as e:
        app.logger.error(f"Billing check error: {e}")
        usage = billing.get_or_create_usage(g.shop)

    return jsonify({
        "has_standard": has_standard,
        "has_pro": has_pro,
        "language": analytics.shop_language(g.shop),
        "is_founder": usage.is_founder,
    })


@app.route("/app/pricing", methods=["POST"])
@admin_required
def pricing_request():
    plan = request_data().get("plan")
    if plan not in config.BILLING_PLANS:
        return jsonify({"error": "Unknown plan", "details": plan}), 400

    return_url = f"https://{g.shop}/admin/apps/{config.SHOPIFY_API_KEY}/app/pricing"
    try:
        confirmation_url = billing.request_subscription(g.shop, g.access_token, plan, return_url)
    except shopify_api.ShopifyAPIError as e:
        app.logger.error(f"Subscription request failed for {g.shop}: {e}")
        return jsonify({"error": "Billing request failed", "details": str(e)}), 500

    return jsonify({"confirmation_url": confirmation_url})


# ---------------- MISC ----------------

@app.route("/health")
def health_check():
    return jsonify({"status": "healthy"}), 200


@app.route("/init-db", methods=["GET"])
def init_db():
    """Create all database tables."""
    try:
        with app.app_context():
            db.create_all()
        return jsonify({"message": "Database initialized successfully"}), 200
    except Exception as e:
        return jsonify({"error": str(e)}), 500


@app.cli.command("generate-codes")
@click.option("--count", default=100, show_default=True, help="Number of codes to generate.")
def generate_codes_command(count):
    """Generate WISH-XXXX promo codes."""
    created = billing.generate_promo_codes(count)
    click.echo(f"Generated {created} promo codes")


if __name__ == "__main__":
    app.run(debug=True, port=5000)
