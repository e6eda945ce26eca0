"""
Dashboard and analysis aggregation over Favorite and RestockRequest rows.
"""

import csv
import io
import logging
from datetime import timedelta

from dateutil import parser as date_parser
from sqlalchemy import func

import billing
import shopify_api
from models import db, EmailSetting, Favorite, RestockRequest, utcnow

logger = logging.getLogger(__name__)

LABELS = {
    "ja": {"notified": "通知済み", "pending": "未通知", "purchased": "購入済み", "not_purchased": "未購入", "direct": "直接流入 / 不明", "organic": "オーガニック検索", "other": "その他", "none": "指定なし"},
    "en": {"notified": "Notified", "pending": "Pending", "purchased": "Purchased", "not_purchased": "Not Purchased", "direct": "Direct / Unknown", "organic": "Organic Search", "other": "Others", "none": "None"},
    "zh": {"notified": "已通知", "pending": "未通知", "purchased": "已購買", "not_purchased": "未購買", "direct": "直接訪問 / 未知", "organic": "自然搜尋", "other": "其他", "none": "無"},
    "fr": {"notified": "Notifié", "pending": "En attente", "purchased": "Acheté", "not_purchased": "Non acheté", "direct": "Direct / Inconnu", "organic": "Recherche organique", "other": "Autres", "none": "Aucun"},
    "de": {"notified": "Benachrichtigt", "pending": "Ausstehend", "purchased": "Gekauft", "not_purchased": "Nicht gekauft", "direct": "Direkt / Unbekannt", "organic": "Organische Suche", "other": "Andere", "none": "Keine"},
    "es": {"notified": "Notificado", "pending": "Pendiente", "purchased": "Comprado", "not_purchased": "No comprado", "direct": "Directo / Desconocido", "organic": "Búsqueda orgánica", "other": "Otros", "none": "Ninguno"},
}

CSV_COLUMNS = [
    ("date", "Date"),
    ("type", "Type"),
    ("id", "ID"),
    ("user_id", "Customer ID"),
    ("user_name", "Customer Name"),
    ("user_email", "Email"),
    ("name", "Product"),
    ("handle", "Handle"),
    ("variant_id", "Variant ID"),
    ("sku", "SKU"),
    ("referrer", "Referrer"),
    ("category", "Source"),
    ("is_notified", "Notified"),
    ("is_converted", "Converted"),
    ("converted_at", "Converted At"),
    ("converted_price", "Converted Price"),
]


def shop_language(shop, default="en"):
    settings = EmailSetting.query.filter_by(shop=shop).first()
    return (settings.language if settings else None) or default


def labels_for(lang):
    return LABELS.get(lang) or LABELS["en"]


def conversion_rate(converted, total):
    return f"{converted / total * 100:.1f}" if total > 0 else "0.0"


def format_datetime(value):
    return value.strftime("%Y/%m/%d %H:%M") if value else ""


# ---------------- DASHBOARD ----------------

def dashboard_summary(shop, token):
    usage = billing.get_or_create_usage(shop)
    lang = shop_language(shop)

    currency_code = None
    try:
        currency_code = shopify_api.fetch_shop_info(shop, token).get("currencyCode")
    except shopify_api.ShopifyAPIError as e:
        logger.error("Shop currency fetch failed for %s: %s", shop, e)

    restock_count = RestockRequest.query.filter_by(shop=shop, is_notified=False).count()
    total_favorites = Favorite.query.filter_by(shop=shop).count()
    all_time_requests = RestockRequest.query.filter_by(shop=shop).count()

    converted_prices = [
        price for (price,) in db.session.query(RestockRequest.converted_price)
        .filter_by(shop=shop, is_converted=True).all()
    ]
    total_revenue = sum(p or 0 for p in converted_prices)

    count_col = func.count(Favorite.id)
    top_rows = (
        db.session.query(Favorite.product_handle, count_col)
        .filter(Favorite.shop == shop)
        .group_by(Favorite.product_handle)
        .order_by(count_col.desc(), Favorite.product_handle)
        .limit(5)
        .all()
    )
    top_favorites = []
    for handle, count in top_rows:
        image_url = None
        try:
            product = shopify_api.fetch_product_by_handle(shop, token, handle)
            image_url = ((product or {}).get("featuredImage") or {}).get("url")
        except shopify_api.ShopifyAPIError as e:
            logger.warning("Image lookup failed for %s on %s: %s", handle, shop, e)
        top_favorites.append({"product_handle": handle, "count": count, "image_url": image_url})

    recent_favs = Favorite.query.filter_by(shop=shop).order_by(Favorite.created_at.desc()).limit(3).all()
    recent_restocks = RestockRequest.query.filter_by(shop=shop).order_by(RestockRequest.created_at.desc()).limit(3).all()
    activities = [
        {"type": "fav", "product_handle": f.product_handle, "customer_id": f.customer_id, "created_at": f.created_at}
        for f in recent_favs
    ] + [
        {"type": "restock", "product_handle": r.product_handle, "customer_email": r.customer_email, "created_at": r.created_at}
        for r in recent_restocks
    ]
    activities.sort(key=lambda a: a["created_at"], reverse=True)
    for activity in activities:
        activity["created_at"] = activity["created_at"].isoformat()

    return {
        "shop": shop,
        "lang": lang,
        "currency_code": currency_code,
        "restock_count": restock_count,
        "total_favorites": total_favorites,
        "total_revenue": round(total_revenue, 2),
        "cv_rate": conversion_rate(len(converted_prices), all_time_requests),
        "top_favorites": top_favorites,
        "activities": activities[:5],
        "app_usage": usage.to_dict(),
        "is_pro_unlocked": billing.is_pro_unlocked(usage),
    }


# ---------------- ANALYSIS ----------------

def resolve_period(period, start=None, end=None, now=None):
    """
    Returns (filter_start, filter_end, graph_start, graph_end).
    filter_start/filter_end are None when unbounded.
    """
    now = now or utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end")
        try:
            start_date = date_parser.parse(start).replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
            end_date = date_parser.parse(end).replace(hour=23, minute=59, second=59, microsecond=999999, tzinfo=None)
        except OverflowError as e:
            raise ValueError(f"Date out of range: {e}") from e
        if end_date < start_date:
            raise ValueError("End date is before start date")
        return start_date, end_date, start_date, end_date

    if period == "all":
        return None, None, today - timedelta(days=30), now

    days = int(period)
    if days < 1:
        raise ValueError("Period must be at least one day")
    try:
        start_date = today - timedelta(days=days - 1)
    except OverflowError as e:
        raise ValueError(f"Period of {days} days is out of range") from e
    return start_date, None, start_date, now


def source_category(referrer, labels):
    if not referrer:
        return labels["direct"]
    ref = referrer.lower()

    if ref == "line" or "line.me" in ref:
        return "LINE"
    if ref == "instagram" or "instagram.com" in ref:
        return "Instagram"
    if ref == "facebook" or "facebook.com" in ref or "fb." in ref:
        return "Facebook"
    if "google." in ref:
        return "Google"
    if "yahoo." in ref or "bing." in ref:
        return labels["organic"]
    return labels["other"]


def _date_filtered(query, column, filter_start, filter_end):
    if filter_start is not None:
        query = query.filter(column >= filter_start)
    if filter_end is not None:
        query = query.filter(column <= filter_end)
    return query


def group_stats(items, product_meta, count_conversions=False):
    stats = {}
    for item in items:
        entry = stats.setdefault(item.product_handle, {"handle": item.product_handle, "count": 0, "converted": 0})
        entry["count"] += 1
        if count_conversions and item.is_converted:
            entry["converted"] += 1

    ranked = sorted(stats.values(), key=lambda s: s["count"], reverse=True)[:5]
    return [
        {
            "handle": s["handle"],
            "name": (product_meta.get(s["handle"]) or {}).get("title") or s["handle"],
            "image": (product_meta.get(s["handle"]) or {}).get("image_url") or "",
            "count": s["count"],
            "converted": s["converted"],
        }
        for s in ranked
    ]


def build_analysis(shop, token, period="7", start=None, end=None, now=None):
    lang = shop_language(shop)
    labels = labels_for(lang)
    now = now or utcnow()
    filter_start, filter_end, graph_start, graph_end = resolve_period(period, start, end, now)

    favorites = _date_filtered(
        Favorite.query.filter_by(shop=shop), Favorite.created_at, filter_start, filter_end
    ).order_by(Favorite.created_at.desc()).all()
    requests_ = _date_filtered(
        RestockRequest.query.filter_by(shop=shop), RestockRequest.created_at, filter_start, filter_end
    ).order_by(RestockRequest.created_at.desc()).all()

    if period == "all":
        oldest = now
        if favorites and favorites[-1].created_at < oldest:
            oldest = favorites[-1].created_at
        if requests_ and requests_[-1].created_at < oldest:
            oldest = requests_[-1].created_at
        graph_start = oldest

    total_favs = len(favorites)
    total_restocks = len(requests_)
    total_conversions = sum(1 for r in requests_ if r.is_converted)
    summary = {
        "total_favs": total_favs,
        "total_restocks": total_restocks,
        "total_conversions": total_conversions,
        "conversion_rate": conversion_rate(total_conversions, total_restocks),
    }

    all_handles = list(dict.fromkeys([f.product_handle for f in favorites] + [r.product_handle for r in requests_]))
    customer_ids = list(dict.fromkeys(f.customer_id for f in favorites if f.customer_id))

    product_meta, variant_skus = {}, {}
    if all_handles:
        try:
            product_meta, variant_skus = shopify_api.fetch_products_by_handles(shop, token, all_handles)
        except shopify_api.ShopifyAPIError as e:
            logger.error("Product lookup failed for %s: %s", shop, e)

    customers = {}
    permission_error = False
    if customer_ids:
        try:
            customers = shopify_api.fetch_customers_by_ids(shop, token, customer_ids)
        except shopify_api.ShopifyAPIError as e:
            logger.warning("Customer lookup refused for %s: %s", shop, e)
            permission_error = True

    def product_name(handle):
        return (product_meta.get(handle) or {}).get("title") or handle

    rows = []
    for f in favorites:
        customer = customers.get(f.customer_id) or {"name": "", "email": ""}
        rows.append({
            "id": f.id,
            "date": format_datetime(f.created_at),
            "timestamp": f.created_at.timestamp(),
            "type": "Fav",
            "handle": f.product_handle,
            "name": product_name(f.product_handle),
            "referrer": f.referrer,
            "category": source_category(f.referrer, labels),
            "user_id": f.customer_id or "",
            "user_name": customer["name"],
            "user_email": customer["email"],
            "variant_id": "-",
            "sku": "-",
            "is_notified": "-",
            "is_converted": "-",
            "converted_at": "-",
            "converted_price": "-",
        })
    for r in requests_:
        rows.append({
            "id": r.id,
            "date": format_datetime(r.created_at),
            "timestamp": r.created_at.timestamp(),
            "type": "Restock",
            "handle": r.product_handle,
            "name": product_name(r.product_handle),
            "referrer": r.referrer,
            "category": source_category(r.referrer, labels),
            "user_id": "",
            "user_name": "",
            "user_email": r.customer_email,
            "variant_id": r.variant_id or labels["none"],
            "sku": variant_skus.get(r.variant_id) or "",
            "is_notified": labels["notified"] if r.is_notified else labels["pending"],
            "is_converted": labels["purchased"] if r.is_converted else labels["not_purchased"],
            "converted_at": format_datetime(r.converted_at),
            "converted_price": r.converted_price if r.converted_price else "",
        })
    rows.sort(key=lambda row: row["timestamp"], reverse=True)

    daily = {}
    day = graph_start.date()
    while day <= graph_end.date():
        key = day.isoformat()
        daily[key] = {"date": key, "val1": 0, "val2": 0, "val3": 0}
        day += timedelta(days=1)
    for f in favorites:
        key = f.created_at.date().isoformat()
        daily.setdefault(key, {"date": key, "val1": 0, "val2": 0, "val3": 0})["val1"] += 1
    for r in requests_:
        key = r.created_at.date().isoformat()
        entry = daily.setdefault(key, {"date": key, "val1": 0, "val2": 0, "val3": 0})
        entry["val2"] += 1
        if r.is_converted:
            entry["val3"] += 1
    trend = sorted(daily.values(), key=lambda d: d["date"])

    sources = {}
    for row in rows:
        src = sources.setdefault(row["category"], {
            "name": row["category"], "total": 0, "unique_users": set(),
            "favs": 0, "restocks": 0, "conversions": 0,
        })
        src["total"] += 1
        unique_key = row["user_id"] or row["user_email"]
        if unique_key:
            src["unique_users"].add(unique_key)
        if row["type"] == "Fav":
            src["favs"] += 1
        else:
            src["restocks"] += 1
            if row["is_converted"] == labels["purchased"]:
                src["conversions"] += 1
    source_data = sorted(
        (
            {
                "name": s["name"], "total": s["total"], "unique": len(s["unique_users"]),
                "favs": s["favs"], "restocks": s["restocks"], "conversions": s["conversions"],
            }
            for s in sources.values()
        ),
        key=lambda s: s["total"],
        reverse=True,
    )

    return {
        "summary": summary,
        "fav_data": group_stats(favorites, product_meta),
        "restock_data": group_stats(requests_, product_meta, count_conversions=True),
        "trend_data": trend,
        "raw_detailed_data": rows,
        "source_data": source_data,
        "period": period,
        "start": start,
        "end": end,
        "lang": lang,
        "permission_error": permission_error,
    }


def export_csv(rows):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([label for _, label in CSV_COLUMNS])
    for row in rows:
        writer.writerow([row.get(key, "") for key, _ in CSV_COLUMNS])
    return output.getvalue()
