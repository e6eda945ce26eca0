import logging
import random
import string

from sqlalchemy.exc import IntegrityError

import config
import shopify_api
from models import db, AppUsage, FounderCampaign, PromoCode, utcnow

logger = logging.getLogger(__name__)

PAID_PLANS = (config.MONTHLY_PLAN_STANDARD, config.MONTHLY_PLAN_PRO)

# apply_founder_code results
FOUNDER_EMPTY = "empty"
FOUNDER_INVALID = "invalid"
FOUNDER_FULL = "full"
FOUNDER_ALREADY = "already"
FOUNDER_SUCCESS = "success"


# ---------------- USAGE COUNTER ----------------

def get_or_create_usage(shop):
    usage = AppUsage.query.filter_by(shop=shop).first()
    if usage:
        return usage

    usage = AppUsage(shop=shop, sent_count=0, last_reset=utcnow())
    db.session.add(usage)
    try:
        db.session.commit()
    except IntegrityError:
        # Created concurrently by another request
        db.session.rollback()
        usage = AppUsage.query.filter_by(shop=shop).first()
    return usage


def month_start(now):
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def reset_usage_if_new_month(shop, now=None):
    """Zero the monthly counter when last_reset falls in an earlier calendar month."""
    now = now or utcnow()
    get_or_create_usage(shop)

    updated = AppUsage.query.filter(
        AppUsage.shop == shop,
        AppUsage.last_reset < month_start(now),
    ).update({AppUsage.sent_count: 0, AppUsage.last_reset: now}, synchronize_session=False)
    db.session.commit()

    if updated:
        logger.info("Monthly usage counter reset for %s", shop)
    return AppUsage.query.filter_by(shop=shop).first()


def reserve_send_slot(shop, limit):
    """
    Atomically take one email from the shop's monthly allowance.
    Returns False when the limit has been reached.
    """
    updated = AppUsage.query.filter(
        AppUsage.shop == shop,
        AppUsage.sent_count < limit,
    ).update({AppUsage.sent_count: AppUsage.sent_count + 1}, synchronize_session=False)
    db.session.commit()
    return updated == 1


def release_send_slot(shop):
    AppUsage.query.filter(
        AppUsage.shop == shop,
        AppUsage.sent_count > 0,
    ).update({AppUsage.sent_count: AppUsage.sent_count - 1}, synchronize_session=False)
    db.session.commit()


# ---------------- PLANS ----------------

def fetch_active_subscription_names(shop, token):
    subscriptions = shopify_api.fetch_active_subscriptions(shop, token)
    return [s.get("name") for s in subscriptions if s.get("name")]


def has_paid_plan(subscription_names):
    return any(name in PAID_PLANS for name in subscription_names)


def resolve_email_limit(shop, token):
    """Monthly email allowance: paid subscribers and founders get the paid limit."""
    usage = AppUsage.query.filter_by(shop=shop).first()
    if usage and usage.is_founder:
        return config.PAID_EMAIL_LIMIT

    if not token:
        return config.FREE_EMAIL_LIMIT

    try:
        if has_paid_plan(fetch_active_subscription_names(shop, token)):
            return config.PAID_EMAIL_LIMIT
    except shopify_api.ShopifyAPIError as e:
        logger.error("Plan check failed for %s: %s", shop, e)

    return config.FREE_EMAIL_LIMIT


def sync_plan_from_subscriptions(shop, subscription_names):
    usage = get_or_create_usage(shop)
    if usage.is_founder:
        return usage

    if config.MONTHLY_PLAN_PRO in subscription_names:
        plan = "pro"
    elif config.MONTHLY_PLAN_STANDARD in subscription_names:
        plan = "standard"
    else:
        plan = "free"

    if usage.plan != plan:
        logger.info("Plan for %s changed %s -> %s", shop, usage.plan, plan)
        usage.plan = plan
        db.session.commit()
    return usage


def is_pro_unlocked(usage):
    return bool(usage) and (usage.is_founder or usage.plan == "pro")


def request_subscription(shop, token, plan_name, return_url):
    plan = config.BILLING_PLANS.get(plan_name)
    if not plan:
        raise ValueError(f"Unknown plan: {plan_name}")

    return shopify_api.create_app_subscription(
        shop,
        token,
        name=plan_name,
        amount=plan["amount"],
        currency_code=plan["currency_code"],
        trial_days=plan["trial_days"],
        return_url=return_url,
        test=config.BILLING_TEST,
    )


# ---------------- FOUNDER CAMPAIGN ----------------

def ensure_founder_campaign():
    campaign = FounderCampaign.query.order_by(FounderCampaign.id).first()
    if campaign:
        return campaign

    campaign = FounderCampaign(
        code=config.FOUNDER_DEFAULT_CODE,
        total_slots=config.FOUNDER_DEFAULT_SLOTS,
        used_slots=0,
        is_active=True,
    )
    db.session.add(campaign)
    db.session.commit()
    return campaign


def apply_founder_code(shop, code):
    """
    Redeem an invite code for the founder plan.

    The slot is taken with a conditional increment so two shops cannot claim
    the last slot; the usage upsert is committed in the same transaction.
    """
    code = (code or "").strip()
    if not code:
        return FOUNDER_EMPTY

    ensure_founder_campaign()
    campaign = FounderCampaign.query.filter_by(code=code).first()
    if not campaign or not campaign.is_active:
        return FOUNDER_INVALID

    try:
        usage = AppUsage.query.filter_by(shop=shop).first()
        if usage and usage.is_founder:
            return FOUNDER_ALREADY

        taken = FounderCampaign.query.filter(
            FounderCampaign.id == campaign.id,
            FounderCampaign.used_slots < FounderCampaign.total_slots,
        ).update({FounderCampaign.used_slots: FounderCampaign.used_slots + 1}, synchronize_session=False)
        if not taken:
            db.session.rollback()
            return FOUNDER_FULL

        now = utcnow()
        if usage is None:
            usage = AppUsage(shop=shop, sent_count=0, last_reset=now)
            db.session.add(usage)
        usage.is_founder = True
        usage.plan = "founder"
        usage.founder_registered_at = now
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Founder plan applied for %s with code %s", shop, code)
    return FOUNDER_SUCCESS


# ---------------- PROMO CODES ----------------

def random_promo_code():
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"WISH-{suffix}"


def generate_promo_codes(count=100):
    """Create up to `count` WISH-XXXX codes, skipping duplicates. Returns the number created."""
    candidates = {random_promo_code() for _ in range(count)}
    existing = {
        row.code for row in PromoCode.query.filter(PromoCode.code.in_(candidates)).all()
    }
    new_codes = sorted(candidates - existing)

    db.session.add_all(PromoCode(code=code) for code in new_codes)
    db.session.commit()
    return len(new_codes)
