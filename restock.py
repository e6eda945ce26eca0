"""
Back-in-stock requests: registration from the storefront, confirmation
emails, the inventory webhook fan-out and order conversion tracking.
"""

import logging

import billing
import mailer
import shopify_api
from models import db, EmailSetting, Notification, RestockRequest, utcnow

logger = logging.getLogger(__name__)

SYNC_REFERRER = "sync-from-local"


def safe_variant_id(variant_id):
    return str(variant_id) if variant_id else ""


def register_request(shop, product_handle, variant_id, customer_email, referrer=None):
    """Create the request unless an identical one exists. Returns True when a row was added."""
    variant_id = safe_variant_id(variant_id)
    existing = RestockRequest.query.filter_by(
        shop=shop,
        product_handle=product_handle,
        variant_id=variant_id,
        customer_email=customer_email,
    ).first()
    if existing:
        return False

    db.session.add(RestockRequest(
        shop=shop,
        product_handle=product_handle,
        variant_id=variant_id,
        customer_email=customer_email,
        referrer=referrer or "",
        is_notified=False,
    ))
    db.session.commit()
    return True


def delete_requests(shop, product_handle, variant_id, customer_email):
    deleted = RestockRequest.query.filter_by(
        shop=shop,
        product_handle=product_handle,
        variant_id=safe_variant_id(variant_id),
        customer_email=customer_email,
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def sync_requests(shop, customer_email, items):
    """Store a storefront's local wishlist as (not yet notified) restock requests."""
    created = 0
    for item in items:
        if not isinstance(item, dict) or not item.get("productHandle"):
            continue
        if register_request(
            shop,
            item.get("productHandle"),
            item.get("variantId"),
            customer_email,
            referrer=SYNC_REFERRER,
        ):
            created += 1
    logger.info("Synced %s new requests for %s on %s", created, customer_email, shop)
    return created


def load_settings(shop):
    try:
        return EmailSetting.query.filter_by(shop=shop).first()
    except Exception as e:
        logger.error("Settings fetch error for %s: %s", shop, e)
        db.session.rollback()
        return None


def send_confirmation(shop, token, product_handle, customer_email):
    """
    Confirmation email for a new request. Counts against the monthly limit;
    returns True when an email went out.
    """
    if not mailer.is_configured():
        return False

    try:
        billing.reset_usage_if_new_month(shop)
    except Exception as e:
        db.session.rollback()
        logger.error("Failed to fetch/update app usage for %s: %s", shop, e)

    settings = load_settings(shop)
    sender_name, subject, html = mailer.build_confirmation_email(settings, product_handle)

    limit = billing.resolve_email_limit(shop, token)
    if not billing.reserve_send_slot(shop, limit):
        logger.warning("[LIMIT REACHED] Shop %s reached the limit of %s emails. Skip sending confirm email.", shop, limit)
        return False

    try:
        mailer.send_email(customer_email, subject, html, sender_name)
    except Exception as e:
        # No email went out; return the slot
        logger.error("Confirmation email to %s failed: %s", customer_email, e)
        billing.release_send_slot(shop)
        return False
    return True


def process_inventory_update(shop, token, payload):
    """
    Email everyone waiting on a variant that just came back in stock.

    Returns a summary dict: {"sent": n, "failed": n, "skipped": n}.
    """
    summary = {"sent": 0, "failed": 0, "skipped": 0}

    inventory_item_id = payload.get("inventory_item_id")
    available = payload.get("available") or 0
    if available <= 0 or not inventory_item_id:
        return summary

    variant = shopify_api.fetch_variant_by_inventory_item(shop, token, inventory_item_id)
    if not variant:
        return summary

    product = variant.get("product") or {}
    handle = product.get("handle")
    title = product.get("title") or handle
    variant_id = shopify_api.numeric_id(variant["id"])

    pending = RestockRequest.query.filter_by(shop=shop, variant_id=variant_id, is_notified=False).all()
    if not pending:
        return summary

    billing.reset_usage_if_new_month(shop)
    limit = billing.resolve_email_limit(shop, token)

    settings = load_settings(shop)
    if settings is not None and settings.is_restock_enabled is False:
        logger.info("Restock emails disabled for %s", shop)
        summary["skipped"] = len(pending)
        return summary

    if not mailer.is_configured():
        logger.warning("RESEND_API_KEY missing; %s restock emails not sent for %s", len(pending), shop)
        summary["skipped"] = len(pending)
        return summary

    sender_name, subject, html = mailer.build_restock_email(settings, title, shop, handle)

    for index, req in enumerate(pending):
        if not billing.reserve_send_slot(shop, limit):
            logger.warning("[LIMIT REACHED] Shop %s reached %s emails; %s requests left pending", shop, limit, len(pending) - index)
            summary["skipped"] = len(pending) - index
            break

        try:
            mailer.send_email(req.customer_email, subject, html, sender_name)
        except Exception as e:
            logger.error("Mail Send Error for request %s: %s", req.id, e)
            billing.release_send_slot(shop)
            summary["failed"] += 1
            continue

        try:
            req.is_notified = True
            db.session.add(Notification(shop=shop, product_handle=handle, customer_email=req.customer_email))
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error("Email sent but bookkeeping failed for request %s: %s", req.id, e)
            summary["failed"] += 1
            continue
        summary["sent"] += 1

    logger.info("Restock notifications for %s variant %s: %s", shop, variant_id, summary)
    return summary


def record_conversions(shop, order):
    """Mark requests as converted when the requesting customer orders the variant."""
    email = order.get("email") or order.get("contact_email")
    line_items = order.get("line_items") or []
    if not email or not line_items:
        return 0

    converted = 0
    now = utcnow()
    for item in line_items:
        variant_id = item.get("variant_id")
        if not variant_id:
            continue
        try:
            price = float(item.get("price"))
        except (TypeError, ValueError):
            price = None

        converted += RestockRequest.query.filter_by(
            shop=shop,
            customer_email=email,
            variant_id=str(variant_id),
            is_converted=False,
        ).update(
            {
                RestockRequest.is_converted: True,
                RestockRequest.converted_at: now,
                RestockRequest.converted_price: price,
            },
            synchronize_session=False,
        )
    db.session.commit()
    if converted:
        logger.info("Recorded %s conversions for %s on %s", converted, email, shop)
    return converted
