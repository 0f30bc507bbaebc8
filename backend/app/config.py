import logging
import os

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


def _env_number(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return float(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid number (got %r); defaulting to %s",
            name,
            raw_value,
            default,
        )
        return default


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")

# Id of the system_settings row holding the rating constants.
RATING_SETTINGS_ID = "rating_settings"
SETTINGS_CACHE_TTL_SECONDS = _env_number("ATR_SETTINGS_CACHE_TTL", 60.0)

# Values the seed script writes into the settings row.
DEFAULT_RATING_SETTINGS = {
    "provisional_k_factor": _env_number("ATR_PROVISIONAL_K_FACTOR", 40.0),
    "established_k_factor": _env_number("ATR_ESTABLISHED_K_FACTOR", 24.0),
    "initial_rating": _env_number("ATR_INITIAL_RATING", 1200.0),
    "matches_for_established": int(_env_number("ATR_MATCHES_FOR_ESTABLISHED", 10)),
    "rating_scale_min": _env_number("ATR_RATING_SCALE_MIN", 100.0),
    "rating_scale_max": _env_number("ATR_RATING_SCALE_MAX", 3000.0),
}


def rate_limits_disabled() -> bool:
    return (os.getenv("DISABLE_RATE_LIMITS") or "").lower() == "true"


def load_cors_settings() -> tuple[list[str], bool]:
    """Read ``ALLOWED_ORIGINS``/``ALLOW_CREDENTIALS``; raise ``ValueError`` if unsafe."""
    raw = os.getenv("ALLOWED_ORIGINS", "").strip()
    if not raw:
        raise ValueError(
            "ALLOWED_ORIGINS environment variable must be set to a comma-separated "
            "list of trusted origins."
        )
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if not origins:
        raise ValueError("ALLOWED_ORIGINS must contain at least one non-empty origin.")
    if "*" in origins:
        raise ValueError(
            "ALLOWED_ORIGINS cannot include '*' (wildcard). Specify explicit, trusted origins."
        )
    allow_credentials = os.getenv("ALLOW_CREDENTIALS", "true").lower() == "true"
    return origins, allow_credentials
