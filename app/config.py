import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bookings.db")

# Public base URL used for contract links and payment callbacks
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000").rstrip("/")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Admin access - single operator, static bearer token
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")

# Workflow windows
RESERVATION_TTL_MINUTES = int(os.getenv("RESERVATION_TTL_MINUTES", "15"))
CONTRACT_SIGNING_WINDOW_DAYS = int(os.getenv("CONTRACT_SIGNING_WINDOW_DAYS", "7"))
INVOICE_EXPIRY_DAYS = int(os.getenv("INVOICE_EXPIRY_DAYS", "7"))
# Hours before the appointment after which a cancelled deposit is retained
CANCELLATION_WINDOW_HOURS = int(os.getenv("CANCELLATION_WINDOW_HOURS", "72"))

# Split billing - upfront share of the project cost, the rest is invoiced at the end
UPFRONT_PERCENTAGE = float(os.getenv("UPFRONT_PERCENTAGE", "80"))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "KES")

# Payment gateway: "paystack" or "dodo"
PAYMENT_PROVIDER = os.getenv("PAYMENT_PROVIDER", "paystack").strip().lower()
PAYMENT_GATEWAY_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "15"))

# Paystack Configuration
PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY")
PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co").rstrip("/")
# Paystack signs webhooks with the secret key unless a dedicated secret is set
PAYSTACK_WEBHOOK_SECRET = os.getenv("PAYSTACK_WEBHOOK_SECRET") or PAYSTACK_SECRET_KEY

# Dodo Payments Configuration
DODO_PAYMENTS_API_KEY = os.getenv("DODO_PAYMENTS_API_KEY")
DODO_PAYMENTS_WEBHOOK_SECRET = os.getenv("DODO_PAYMENTS_WEBHOOK_SECRET")
# "test_mode" or "live_mode" - default to test for safety
DODO_PAYMENTS_ENVIRONMENT = os.getenv("DODO_PAYMENTS_ENVIRONMENT", "test_mode")
# Adhoc product ID for "pay what you want" invoice payments
DODO_ADHOC_PRODUCT_ID = os.getenv("DODO_ADHOC_PRODUCT_ID")

# Rate limiting for public endpoints
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
# Where the gateway sends the client after checkout
PAYMENT_CALLBACK_URL = os.getenv("PAYMENT_CALLBACK_URL", f"{BASE_URL}/payment/success")
