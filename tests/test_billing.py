import re
from datetime import datetime

import pytest

import billing
import config
import shopify_api
from conftest import SHOP, TOKEN
from models import db, AppUsage, FounderCampaign, PromoCode


def test_reset_usage_in_new_month(app):
    db.session.add(AppUsage(shop=SHOP, sent_count=42, last_reset=datetime(2026, 9, 15, 10, 0)))
    db.session.commit()

    usage = billing.reset_usage_if_new_month(SHOP, now=datetime(2026, 10, 1, 0, 5))

    assert usage.sent_count == 0
    assert usage.last_reset == datetime(2026, 10, 1, 0, 5)


def test_no_reset_within_same_month(app):
    db.session.add(AppUsage(shop=SHOP, sent_count=42, last_reset=datetime(2026, 10, 1, 0, 5)))
    db.session.commit()

    usage = billing.reset_usage_if_new_month(SHOP, now=datetime(2026, 10, 31, 23, 0))

    assert usage.sent_count == 42


def test_reset_creates_usage_row(app):
    usage = billing.reset_usage_if_new_month(SHOP)
    assert usage.sent_count == 0
    assert usage.plan == "free"


def test_reserve_send_slot_stops_at_limit(app):
    billing.get_or_create_usage(SHOP)

    results = [billing.reserve_send_slot(SHOP, 2) for _ in range(3)]

    assert results == [True, True, False]
    assert AppUsage.query.filter_by(shop=SHOP).one().sent_count == 2


def test_reserve_send_slot_ignores_stale_session_count(app):
    usage = billing.get_or_create_usage(SHOP)
    assert usage.sent_count == 0

    # another worker spends the allowance behind this session's back
    AppUsage.query.filter_by(shop=SHOP).update({AppUsage.sent_count: 2}, synchronize_session=False)
    assert usage.__dict__["sent_count"] == 0

    assert billing.reserve_send_slot(SHOP, 2) is False
    assert AppUsage.query.filter_by(shop=SHOP).one().sent_count == 2


def test_release_send_slot_never_goes_negative(app):
    billing.get_or_create_usage(SHOP)
    billing.release_send_slot(SHOP)
    assert AppUsage.query.filter_by(shop=SHOP).one().sent_count == 0


def test_email_limit_for_paid_plan(app, monkeypatch):
    monkeypatch.setattr(
        shopify_api, "fetch_active_subscriptions",
        lambda shop, token: [{"name": config.MONTHLY_PLAN_STANDARD, "status": "ACTIVE"}],
    )
    assert billing.resolve_email_limit(SHOP, TOKEN) == config.PAID_EMAIL_LIMIT


def test_email_limit_for_founder_skips_billing(app, monkeypatch):
    def unreachable(shop, token):
        raise AssertionError("billing API should not be called for founders")

    monkeypatch.setattr(shopify_api, "fetch_active_subscriptions", unreachable)
    db.session.add(AppUsage(shop=SHOP, is_founder=True, plan="founder"))
    db.session.commit()

    assert billing.resolve_email_limit(SHOP, TOKEN) == config.PAID_EMAIL_LIMIT


def test_email_limit_falls_back_to_free(app, monkeypatch):
    def broken(shop, token):
        raise shopify_api.ShopifyAPIError("GraphQL query failed with status 500")

    monkeypatch.setattr(shopify_api, "fetch_active_subscriptions", broken)
    assert billing.resolve_email_limit(SHOP, TOKEN) == config.FREE_EMAIL_LIMIT
    assert billing.resolve_email_limit(SHOP, None) == config.FREE_EMAIL_LIMIT


def test_sync_plan_from_subscriptions(app):
    assert billing.sync_plan_from_subscriptions(SHOP, [config.MONTHLY_PLAN_PRO]).plan == "pro"
    assert billing.sync_plan_from_subscriptions(SHOP, [config.MONTHLY_PLAN_STANDARD]).plan == "standard"
    assert billing.sync_plan_from_subscriptions(SHOP, []).plan == "free"


def test_is_pro_unlocked():
    assert billing.is_pro_unlocked(AppUsage(plan="pro", is_founder=False))
    assert billing.is_pro_unlocked(AppUsage(plan="free", is_founder=True))
    assert not billing.is_pro_unlocked(AppUsage(plan="standard", is_founder=False))
    assert not billing.is_pro_unlocked(None)


def test_request_subscription_unknown_plan(app):
    with pytest.raises(ValueError):
        billing.request_subscription(SHOP, TOKEN, "Gold Plan", "https://example.com")


def test_request_subscription_uses_plan_pricing(app, monkeypatch):
    captured = {}

    def fake_create(shop, token, **kwargs):
        captured.update(kwargs)
        return "https://test-shop.myshopify.com/admin/charges/confirm"

    monkeypatch.setattr(shopify_api, "create_app_subscription", fake_create)
    url = billing.request_subscription(SHOP, TOKEN, config.MONTHLY_PLAN_PRO, "https://example.com/back")

    assert url.endswith("/confirm")
    assert captured["amount"] == 24.99
    assert captured["currency_code"] == "USD"
    assert captured["trial_days"] == 30
    assert captured["name"] == config.MONTHLY_PLAN_PRO


def test_founder_campaign_seeded(app):
    campaign = billing.ensure_founder_campaign()
    assert campaign.code == config.FOUNDER_DEFAULT_CODE
    assert campaign.total_slots == config.FOUNDER_DEFAULT_SLOTS
    assert billing.ensure_founder_campaign().id == campaign.id


def test_apply_founder_code_flow(app):
    billing.ensure_founder_campaign()

    assert billing.apply_founder_code(SHOP, "  ") == billing.FOUNDER_EMPTY
    assert billing.apply_founder_code(SHOP, "NOPE") == billing.FOUNDER_INVALID
    assert billing.apply_founder_code(SHOP, "FOUNDER100") == billing.FOUNDER_SUCCESS
    assert billing.apply_founder_code(SHOP, "FOUNDER100") == billing.FOUNDER_ALREADY

    usage = AppUsage.query.filter_by(shop=SHOP).one()
    assert usage.is_founder is True
    assert usage.plan == "founder"
    assert usage.founder_registered_at is not None
    assert FounderCampaign.query.one().used_slots == 1


def test_apply_founder_code_full_campaign(app):
    db.session.add(FounderCampaign(code="EARLY", total_slots=1, used_slots=1, is_active=True))
    db.session.commit()

    assert billing.apply_founder_code(SHOP, "EARLY") == billing.FOUNDER_FULL
    assert AppUsage.query.filter_by(shop=SHOP).first() is None
    assert FounderCampaign.query.one().used_slots == 1


def test_inactive_founder_code_is_invalid(app):
    db.session.add(FounderCampaign(code="OLD", total_slots=10, used_slots=0, is_active=False))
    db.session.commit()
    assert billing.apply_founder_code(SHOP, "OLD") == billing.FOUNDER_INVALID


def test_generate_promo_codes(app):
    created = billing.generate_promo_codes(10)

    codes = [p.code for p in PromoCode.query.all()]
    assert created == len(codes)
    assert 0 < created <= 10
    assert all(re.fullmatch(r"WISH-[A-Z0-9]{4}", code) for code in codes)


def test_generate_codes_cli(app):
    result = app.test_cli_runner().invoke(args=["generate-codes", "--count", "3"])
    assert "promo codes" in result.output
    assert PromoCode.query.count() <= 3
