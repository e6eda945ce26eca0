from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StoreToken(db.Model):
    __tablename__ = "store_tokens"
    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), unique=True, nullable=False)
    access_token = db.Column(db.Text, nullable=False)
    scope = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class Favorite(db.Model):
    __tablename__ = "favorites"
    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), nullable=False, index=True)
    customer_id = db.Column(db.String(64))
    product_handle = db.Column(db.String(255), nullable=False)
    referrer = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class RestockRequest(db.Model):
    __tablename__ = "restock_requests"
    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), nullable=False, index=True)
    product_handle = db.Column(db.String(255))
    variant_id = db.Column(db.String(64), default="")
    customer_email = db.Column(db.String(255), nullable=False)
    # Free-form source tag; "sync-from-local" marks rows pushed from a storefront wishlist
    referrer = db.Column(db.Text, default="")
    is_notified = db.Column(db.Boolean, default=False, nullable=False)
    is_converted = db.Column(db.Boolean, default=False, nullable=False)
    converted_at = db.Column(db.DateTime)
    converted_price = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class EmailSetting(db.Model):
    __tablename__ = "email_settings"
    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), unique=True, nullable=False)
    sender_name = db.Column(db.String(255))
    subject = db.Column(db.Text)
    body = db.Column(db.Text)
    restock_subject = db.Column(db.Text)
    restock_body = db.Column(db.Text)
    language = db.Column(db.String(16), default="ja")
    is_restock_enabled = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            "sender_name": self.sender_name,
            "subject": self.subject,
            "body": self.body,
            "restock_subject": self.restock_subject,
            "restock_body": self.restock_body,
            "language": self.language,
            "is_restock_enabled": self.is_restock_enabled,
        }


class AppUsage(db.Model):
    __tablename__ = "app_usage"
    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), unique=True, nullable=False)
    sent_count = db.Column(db.Integer, default=0, nullable=False)
    last_reset = db.Column(db.DateTime, default=utcnow, nullable=False)
    plan = db.Column(db.String(32), default="free", nullable=False)
    is_founder = db.Column(db.Boolean, default=False, nullable=False)
    founder_registered_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            "shop": self.shop,
            "sent_count": self.sent_count,
            "last_reset": self.last_reset.isoformat() if self.last_reset else None,
            "plan": self.plan,
            "is_founder": self.is_founder,
        }


class FounderCampaign(db.Model):
    __tablename__ = "founder_campaigns"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False)
    total_slots = db.Column(db.Integer, default=100, nullable=False)
    used_slots = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)


class PromoCode(db.Model):
    __tablename__ = "promo_codes"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class Notification(db.Model):
    """Send history: one row per restock email delivered."""
    __tablename__ = "notifications"
    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), index=True)
    product_handle = db.Column(db.String(255))
    customer_email = db.Column(db.String(255))
    sent_at = db.Column(db.DateTime, default=utcnow)


def get_access_token_for_shop(shop):
    store = StoreToken.query.filter_by(shop=shop).first()
    return store.access_token if store else None
