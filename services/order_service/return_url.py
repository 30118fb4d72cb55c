from urllib.parse import urlencode

from shared.errors import OrderUnpaid, ReturnURLMissing
from shared.security.signature import SignatureForm, format_price, sign

from .models import Order, OrderState


def build_return_url(order: Order, secret: str) -> str:
    """Merchant return URL with a signed payId/param/type/price/reallyPrice query."""
    if not OrderState(order.state).is_paid:
        raise OrderUnpaid()
    if not order.return_url:
        raise ReturnURLMissing()

    fields = {
        "payId": order.pay_id,
        "param": order.param or "",
        "type": int(order.pay_type),
        "price": format_price(order.price),
        "reallyPrice": format_price(order.really_price),
    }
    query = urlencode({**fields, "sign": sign(fields, secret, SignatureForm.RETURN_URL)})
    separator = "&" if "?" in order.return_url else "?"
    return f"{order.return_url}{separator}{query}"
