from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from shared.config.settings import RATE_LIMIT_ENABLED

APP_ID_HEADER = "X-App-Id"


def merchant_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Order creation carries appId in its body, which the limiter cannot read, so
    merchants that want a per-merchant bucket send it again in the X-App-Id
    header. Everything else is keyed by client IP (behind a proxy, Uvicorn must
    be started with --forwarded-allow-ips for this to be the real client).
    """
    app_id = request.headers.get(APP_ID_HEADER)
    if app_id:
        return f"merchant:{app_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=merchant_or_ip, enabled=RATE_LIMIT_ENABLED)
