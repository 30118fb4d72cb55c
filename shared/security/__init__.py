from .api_key import verify_api_key
from .dependencies import verify_internal_api_key
from .rate_limiter import limiter, merchant_or_ip
from .signature import SignatureForm, format_price, sign, verify

__all__ = [
    "verify_api_key",
    "verify_internal_api_key",
    "limiter",
    "merchant_or_ip",
    "SignatureForm",
    "format_price",
    "sign",
    "verify",
]
