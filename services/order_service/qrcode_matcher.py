from dataclasses import dataclass
from decimal import Decimal

from services.merchant_service.schemas import MerchantConfig, PayType
from shared.errors import QRCodeNotConfigured

IS_AUTO_STATIC = 0
IS_AUTO_GENERAL = 1


@dataclass(frozen=True)
class QRCodeMatch:
    pay_url: str
    is_auto: int


def match_qrcode(price: Decimal, pay_type: PayType, merchant: MerchantConfig) -> QRCodeMatch:
    """
    Exact (price, type) static code first, then the merchant's general code
    for that payment type.
    """
    for qr in merchant.static_qrcodes:
        if qr.pay_type == pay_type and qr.price == price and qr.pay_url:
            return QRCodeMatch(pay_url=qr.pay_url, is_auto=IS_AUTO_STATIC)

    general = merchant.general_qrcode(pay_type)
    if general:
        return QRCodeMatch(pay_url=general, is_auto=IS_AUTO_GENERAL)

    raise QRCodeNotConfigured(
        f"No payment QR code available, configure a {pay_type.label} QR code "
        f"in the merchant settings"
    )
