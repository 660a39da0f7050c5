import os

from dotenv import load_dotenv

# Load .env from the project root
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./chatcommerce.db")
ENV = os.getenv("ENVIRONMENT", os.getenv("ENV", "dev"))
ENV_NORMALIZED = ENV.strip().lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# WhatsApp Cloud API
WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "").strip()
META_WA_ACCESS_TOKEN = os.getenv("META_WA_ACCESS_TOKEN", "").strip()
META_API_VERSION = os.getenv("META_API_VERSION", "v19.0")
OUTBOUND_TIMEOUT_SECONDS = float(os.getenv("OUTBOUND_TIMEOUT_SECONDS", "10"))
OUTBOUND_MAX_RETRIES = int(os.getenv("OUTBOUND_MAX_RETRIES", "3"))

# Conversation engine
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "24"))
FLOW_SEND_DELAY_SECONDS = float(os.getenv("FLOW_SEND_DELAY_SECONDS", "0.5"))
CATALOG_PRODUCT_LIMIT = int(os.getenv("CATALOG_PRODUCT_LIMIT", "100"))

# Admin endpoints (status updates from the dashboard)
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "").strip()

# Run `alembic upgrade head` on startup (defaults to on in prod).
_AUTO_APPLY_RAW = os.getenv("AUTO_APPLY_MIGRATIONS", "").strip().lower()
AUTO_APPLY_MIGRATIONS = _AUTO_APPLY_RAW in {"1", "true", "yes", "on"} or (_AUTO_APPLY_RAW == "" and IS_PROD)
