import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Public URL of the payment page front-end; creation responses redirect here.
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Amount allocation
ALLOCATION_MAX_ATTEMPTS = _int_env("ALLOCATION_MAX_ATTEMPTS", 10)

# Order lifecycle
DEFAULT_CLOSE_MINUTES = _int_env("DEFAULT_CLOSE_MINUTES", 5)
SWEEP_DEFAULT_LIMIT = _int_env("SWEEP_DEFAULT_LIMIT", 100)
PURGE_DEFAULT_DAYS = _int_env("PURGE_DEFAULT_DAYS", 30)
RESERVATION_ORPHAN_GRACE_SECONDS = _int_env("RESERVATION_ORPHAN_GRACE_SECONDS", 600)

# Payment listener: orders are refused while it is offline.
# A positive value also treats a heartbeat older than this many seconds as offline.
MONITOR_HEARTBEAT_TIMEOUT_SECONDS = _int_env("MONITOR_HEARTBEAT_TIMEOUT_SECONDS", 0)

# Merchant webhooks
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "10"))

# Rate limiting (slowapi syntax)
RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
RATE_LIMIT_CREATE = os.getenv("RATE_LIMIT_CREATE", "60/minute")

# Observability
OTEL_ENABLED = _bool_env("OTEL_ENABLED", True)
METRICS_ENABLED = _bool_env("METRICS_ENABLED", True)
