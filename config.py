import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# ---------------- SHOPIFY ----------------
SHOPIFY_API_KEY = os.getenv("SHOPIFY_API_KEY", "")
SHOPIFY_API_SECRET = os.getenv("SHOPIFY_API_SECRET", "")
SHOPIFY_APP_URL = os.getenv("SHOPIFY_APP_URL", "").rstrip("/")
SCOPES = os.getenv(
    "SCOPES",
    "read_products,read_inventory,read_orders,read_customers,write_customers",
)
SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-10")

# Topics registered after install; all of them are delivered to /api/webhooks
WEBHOOK_TOPICS = ["INVENTORY_LEVELS_UPDATE", "ORDERS_CREATE", "APP_UNINSTALLED"]

REQUEST_TIMEOUT = 15


# ---------------- DATABASE ----------------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///wishflow.db")

if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")


# ---------------- EMAIL ----------------
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_URL = "https://api.resend.com/emails"
MAIL_FROM_ADDRESS = os.getenv("MAIL_FROM_ADDRESS", "in_stock@knotscheme.com")
DEFAULT_SENDER_NAME = "ショップ事務局"


# ---------------- BILLING ----------------
MONTHLY_PLAN_STANDARD = "Standard Plan"
MONTHLY_PLAN_PRO = "Pro Plan"

BILLING_PLANS = {
    MONTHLY_PLAN_STANDARD: {"amount": 9.99, "currency_code": "USD", "trial_days": 30},
    MONTHLY_PLAN_PRO: {"amount": 24.99, "currency_code": "USD", "trial_days": 30},
}

BILLING_TEST = os.getenv("BILLING_TEST", "true").lower() == "true"

FREE_EMAIL_LIMIT = 50
PAID_EMAIL_LIMIT = 10000

FOUNDER_DEFAULT_CODE = "FOUNDER100"
FOUNDER_DEFAULT_SLOTS = 100


# ---------------- LOGGING ----------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
