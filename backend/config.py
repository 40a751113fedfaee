"""Environment-driven settings.

Values are read once at import; ``load_dotenv()`` runs before this module is
imported from ``backend.main``. Secrets are not validated here: the code that
needs them raises with a clear message on first use.
"""

import os


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _csv(name: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Browser origin, used for CORS and Stripe redirect URLs
APP_URL = os.getenv("APP_URL") or os.getenv("FRONTEND_URL") or "http://localhost:3000"
FRONTEND_URL = os.getenv("FRONTEND_URL")

# Auth (tokens issued by the hosted identity provider)
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")
ADMIN_USER_IDS = set(_csv("ADMIN_USER_IDS"))

# Image generation
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")
GEMINI_TIMEOUT_MS = _int("GEMINI_TIMEOUT_MS", 90_000)
GENERATION_MAX_IN_FLIGHT = max(_int("GENERATION_MAX_IN_FLIGHT", 1), 1)
IMAGE_FETCH_TIMEOUT = float(os.getenv("IMAGE_FETCH_TIMEOUT", "30"))
WIZARD_SESSION_TTL_HOURS = max(_int("WIZARD_SESSION_TTL_HOURS", 24), 1)

# Blob storage (S3-compatible endpoint)
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "visuals")
STORAGE_ENDPOINT_URL = os.getenv("STORAGE_ENDPOINT_URL")
STORAGE_REGION = os.getenv("STORAGE_REGION", "us-east-1")
STORAGE_ACCESS_KEY_ID = os.getenv("STORAGE_ACCESS_KEY_ID")
STORAGE_SECRET_ACCESS_KEY = os.getenv("STORAGE_SECRET_ACCESS_KEY")
STORAGE_PUBLIC_BASE_URL = os.getenv("STORAGE_PUBLIC_BASE_URL")

# Billing
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")


def stripe_price_id(plan_id: str, billing_interval: str) -> str | None:
    """Price id from STRIPE_PRICE_<PLAN>_<MONTHLY|YEARLY>."""
    return os.getenv(f"STRIPE_PRICE_{plan_id.upper()}_{billing_interval.upper()}")


def is_admin(user_id: str) -> bool:
    return user_id in ADMIN_USER_IDS
