# backend/config.py

import os
import re
import secrets
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

# ------------------------------------------------------------------------------
# App
# ------------------------------------------------------------------------------
APP_TITLE = os.getenv("APP_TITLE", "WatchLater")
APP_ENV = os.getenv("APP_ENV", os.getenv("NODE_ENV", "development")).strip().lower()
IS_PRODUCTION = APP_ENV == "production"
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
API_PREFIX = "/v1/api"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# session middleware (only used for the OAuth redirect dance)
SECRET_KEY = os.getenv("SECRET_KEY", secrets.token_hex(32))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGIN", BASE_URL).split(",") if o.strip()]

# ------------------------------------------------------------------------------
# Database
# ------------------------------------------------------------------------------
DB_URL = os.getenv("DATABASE_URL") or os.getenv("DB_URL") or "sqlite:///./app.db"
IS_SQLITE = DB_URL.startswith("sqlite:")

# ------------------------------------------------------------------------------
# Tokens
# ------------------------------------------------------------------------------
_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.I)
_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(raw: str) -> timedelta:
    """Parse `90`, `15m`, `1h`, `7d` style durations."""
    m = _DURATION_RE.match(raw or "")
    if not m:
        raise ValueError(f"invalid duration: {raw!r}")
    amount, unit = int(m.group(1)), m.group(2).lower()
    return timedelta(**{_UNITS[unit]: amount})


JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "your-refresh-secret-key")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_IN = parse_duration(os.getenv("JWT_EXPIRES_IN", "1h"))
JWT_REFRESH_EXPIRES_IN = parse_duration(os.getenv("JWT_REFRESH_EXPIRES_IN", "7d"))

# cookie | bearer
AUTH_TRANSPORT = os.getenv("AUTH_TRANSPORT", "cookie").strip().lower()
ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

# ------------------------------------------------------------------------------
# OAuth (Google only)
# ------------------------------------------------------------------------------
GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET", "")
OAUTH_REDIRECT_URI = os.getenv("OAUTH_REDIRECT_URI", "")
# where the browser lands after the Google callback
OAUTH_SUCCESS_REDIRECT = os.getenv("OAUTH_SUCCESS_REDIRECT", "/")

# ------------------------------------------------------------------------------
# Metadata fetching
# ------------------------------------------------------------------------------
OG_FETCH_TIMEOUT_SEC = float(os.getenv("OG_FETCH_TIMEOUT_SEC", "8.0"))
OEMBED_TIMEOUT_SEC = float(os.getenv("OEMBED_TIMEOUT_SEC", "5.0"))
PLATFORM_FETCH_TIMEOUT_SEC = float(os.getenv("PLATFORM_FETCH_TIMEOUT_SEC", "8.0"))
MAX_HTML_BYTES = int(os.getenv("MAX_HTML_BYTES", "2000000"))
# soup | regex
META_PARSER = os.getenv("META_PARSER", "soup").strip().lower()
BLOCK_PRIVATE_HOSTS = os.getenv("BLOCK_PRIVATE_HOSTS", "true").lower() == "true"

# ------------------------------------------------------------------------------
# Backfill worker
# ------------------------------------------------------------------------------
WORKER_INTERVAL_SEC = float(os.getenv("WORKER_INTERVAL_SEC", "30.0"))
WORKER_BATCH_SIZE = int(os.getenv("WORKER_BATCH_SIZE", "20"))
