import os

from dotenv import load_dotenv

load_dotenv()

TRON_ENDPOINTS = {
    "mainnet": "https://api.trongrid.io",
    "nile": "https://nile.trongrid.io",
    "shasta": "https://api.shasta.trongrid.io",
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL")
DB_POOL_MIN = int(os.getenv("DB_POOL_MIN", "1"))
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "10"))
DB_SSLMODE = os.getenv("DB_SSLMODE", "prefer")

TRON_NETWORK = os.getenv("TRON_NETWORK", "nile").strip().lower()
TRON_API_URL = os.getenv("TRON_API_URL") or TRON_ENDPOINTS.get(TRON_NETWORK, TRON_ENDPOINTS["nile"])
TRONGRID_API_KEY = os.getenv("TRONGRID_API_KEY", "")
CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", "")
TRON_HTTP_TIMEOUT_SECONDS = float(os.getenv("TRON_HTTP_TIMEOUT_SECONDS", "10"))

SYNC_ENABLED = _env_bool("SYNC_ENABLED", True)
SYNC_POLL_INTERVAL_SECONDS = float(os.getenv("SYNC_POLL_INTERVAL_SECONDS", "3"))
SYNC_LOOKBACK_BLOCKS = int(os.getenv("SYNC_LOOKBACK_BLOCKS", "1200"))
# TRON blocks solidify after 19 confirmations
SYNC_CONFIRMATION_BLOCKS = int(os.getenv("SYNC_CONFIRMATION_BLOCKS", "19"))
STAGING_MATCH_WINDOW_MINUTES = int(os.getenv("STAGING_MATCH_WINDOW_MINUTES", "60"))
STAGING_EXPIRY_MINUTES = int(os.getenv("STAGING_EXPIRY_MINUTES", "60"))

BATCH_MAX_NOTICES = int(os.getenv("BATCH_MAX_NOTICES", "10"))
# 25 TRX, expressed in sun
FEE_PER_NOTICE_SUN = int(os.getenv("FEE_PER_NOTICE_SUN", "25000000"))

SESSION_SECRET = os.getenv("SESSION_SECRET")
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "3600"))
ADMIN_WALLET_ADDRESS = os.getenv("ADMIN_WALLET_ADDRESS", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_EMAIL = os.getenv("SMTP_EMAIL", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "https://theblockservice.com,https://blockserved.com,http://localhost:8080,http://localhost:3000",
    ).split(",")
    if origin.strip()
]

LOG_ENVIRONMENT = os.getenv("LOG_ENVIRONMENT", "development")
