"""Central configuration for the Strava activity client.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Secrets are read from environment variables (optionally
via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Strava settings
# ---------------------------------------------------------------------------
# Base Strava API URLs.
STRAVA_BASE_URL = "https://www.strava.com/api/v3"
STRAVA_AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
STRAVA_OAUTH_URL = "https://www.strava.com/oauth/token"

# Client credentials pulled from the environment. Do not hardcode secrets.
CLIENT_ID = os.getenv("STRAVA_CLIENT_ID", "")
CLIENT_SECRET = os.getenv("STRAVA_CLIENT_SECRET", "")

# Local callback server used by the interactive login helper.
OAUTH_PORT = _env_int("STRAVA_OAUTH_PORT", 5000)
REDIRECT_URI = os.getenv(
    "STRAVA_REDIRECT_URI", f"http://localhost:{OAUTH_PORT}/callback"
)

# Read access plus private activities.
SCOPE = "read,activity:read_all"


# ---------------------------------------------------------------------------
# Storage / caching
# ---------------------------------------------------------------------------
# JSON file used by the CLI to persist tokens and the activity cache.
TOKEN_STORE_PATH = os.getenv("STRAVA_TOKEN_STORE", ".strava_store.json")

# Key namespace inside the store. Kept stable so existing stores stay readable.
ACCESS_TOKEN_KEY = "strava_access_token"
REFRESH_TOKEN_KEY = "strava_refresh_token"
EXPIRES_AT_KEY = "strava_expires_at"
ACTIVITIES_CACHE_KEY = "strava_activities_cache"
ACTIVITIES_CACHE_TIME_KEY = "strava_activities_cache_time"

# Seconds a fetched activity history is served from the store.
ACTIVITY_CACHE_TTL_SECONDS = _env_int("ACTIVITY_CACHE_TTL_SECONDS", 60 * 60)

# Strava caps list endpoints at 200 items per page.
ACTIVITY_PAGE_SIZE = 200

# Maximum number of activity streams to keep in the in-memory cache.
ACTIVITY_STREAM_CACHE_SIZE = _env_int("ACTIVITY_STREAM_CACHE_SIZE", 64)
ACTIVITY_STREAM_CACHE_TTL_SECONDS = _env_float(
    "ACTIVITY_STREAM_CACHE_TTL_SECONDS", 15 * 60.0
)

# Default precision (decimal places) of Strava summary polylines.
POLYLINE_PRECISION = 5


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
# HTTP session pool sizes.
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 10

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_int("STRAVA_REQUEST_TIMEOUT", 15)

# Log raw tokens after a successful login. Off unless explicitly requested.
PRINT_TOKENS_DEFAULT = _env_bool("STRAVA_PRINT_TOKENS", False)
