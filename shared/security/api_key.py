"""
Shared key for the order-management routes (close, update, delete, sweep,
purge). Merchant-facing routes are authenticated by request signatures instead.
"""
import os
import secrets
import warnings

INSECURE_DEFAULT_KEY = "insecure-default-change-me"


def load_internal_api_key() -> str:
    key = os.getenv("INTERNAL_API_KEY", "")
    if not key:
        warnings.warn(
            "INTERNAL_API_KEY is not set; management routes accept the built-in "
            "development key. Set it before exposing the gateway.",
            stacklevel=2,
        )
        return INSECURE_DEFAULT_KEY
    return key


INTERNAL_API_KEY: str = load_internal_api_key()


def verify_api_key(provided_key: str | None) -> bool:
    if not provided_key:
        return False
    return secrets.compare_digest(provided_key.encode("utf-8"), INTERNAL_API_KEY.encode("utf-8"))
