import json
import logging

import shopify_api
from models import db, Favorite

logger = logging.getLogger(__name__)

ADDED = "added"
REMOVED = "removed"


class WishlistSaveError(Exception):
    def __init__(self, user_errors):
        super().__init__(f"Wishlist save failed: {user_errors}")
        self.user_errors = user_errors


def parse_wishlist(value):
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return []
    return parsed if isinstance(parsed, list) else []


def toggle_handle(current, handle, mode=None):
    """Returns (new_list, action). mode == "delete" only ever removes."""
    new_list = list(current)
    if mode == "delete":
        return [h for h in new_list if h != handle], REMOVED
    if handle in new_list:
        return [h for h in new_list if h != handle], REMOVED
    new_list.append(handle)
    return new_list, ADDED


def load_wishlist(shop, token, customer_id):
    return parse_wishlist(shopify_api.fetch_customer_wishlist_value(shop, token, customer_id))


def write_wishlist(shop, token, customer_id, handles):
    user_errors = shopify_api.save_customer_wishlist(shop, token, customer_id, handles)
    if user_errors:
        logger.error("Wishlist save error for customer %s: %s", customer_id, user_errors)
        raise WishlistSaveError(user_errors)


def toggle_wishlist(shop, token, customer_id, handle, mode=None, referrer=None):
    """Toggle a handle in the customer's wishlist metafield and mirror it to Favorite rows."""
    current = load_wishlist(shop, token, customer_id)
    new_list, action = toggle_handle(current, handle, mode)
    write_wishlist(shop, token, customer_id, new_list)
    logger.info("Wishlist %s for customer %s: %s", action, customer_id, handle)

    mirror_favorite(shop, customer_id, handle, action, referrer)
    return new_list, action


def add_to_wishlist(shop, token, customer_id, handle):
    wishlist = load_wishlist(shop, token, customer_id)
    if handle not in wishlist:
        wishlist.append(handle)
    write_wishlist(shop, token, customer_id, wishlist)
    return wishlist


def remove_from_wishlist(shop, token, customer_id, handle):
    wishlist = [h for h in load_wishlist(shop, token, customer_id) if h != handle]
    write_wishlist(shop, token, customer_id, wishlist)
    return wishlist


def mirror_favorite(shop, customer_id, handle, action, referrer=None):
    """Keep the Favorite table in step with the metafield. Failures never reach the caller."""
    if not shop:
        logger.warning("No shop domain; skipping Favorite mirror for %s", handle)
        return

    customer_id = str(customer_id)
    handle = str(handle)
    try:
        if action == ADDED:
            existing = Favorite.query.filter_by(
                shop=shop, customer_id=customer_id, product_handle=handle
            ).first()
            if existing:
                return

            db.session.add(Favorite(
                shop=shop,
                customer_id=customer_id,
                product_handle=handle,
                referrer=referrer or "",
            ))
            db.session.commit()
        elif action == REMOVED:
            Favorite.query.filter_by(
                shop=shop, customer_id=customer_id, product_handle=handle
            ).delete(synchronize_session=False)
            db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error("Favorite mirror failed for %s/%s: %s", customer_id, handle, e)
