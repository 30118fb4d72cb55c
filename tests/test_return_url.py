from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest

from services.order_service.models import Order, OrderState
from services.order_service.return_url import build_return_url
from shared.errors import OrderUnpaid, ReturnURLMissing
from shared.security.signature import SignatureForm, sign


def paid_order(**overrides):
    values = dict(
        order_id="202610171200310001abcdef",
        pay_id="ORD1",
        merchant_id=1,
        pay_type=1,
        price=Decimal("10.00"),
        really_price=Decimal("10.01"),
        state=int(OrderState.PAID),
        param="note",
        return_url="https://shop.example.com/return",
    )
    values.update(overrides)
    return Order(**values)


def test_signed_query_is_appended():
    url = build_return_url(paid_order(), "secret123")
    parts = urlsplit(url)
    query = {k: v[0] for k, v in parse_qs(parts.query, keep_blank_values=True).items()}

    assert url.startswith("https://shop.example.com/return?")
    assert query == {
        "payId": "ORD1",
        "param": "note",
        "type": "1",
        "price": "10.00",
        "reallyPrice": "10.01",
        "sign": "85bdc0e7fa494dfb891a494ca6d2a9d0",
    }


def test_existing_query_string_uses_ampersand():
    url = build_return_url(paid_order(return_url="https://shop.example.com/r?lang=en"), "secret123")
    assert url.startswith("https://shop.example.com/r?lang=en&payId=ORD1&")


def test_param_is_url_encoded():
    order = paid_order(param="a b&c=d")
    url = build_return_url(order, "secret123")
    query = parse_qs(urlsplit(url).query)
    assert query["param"] == ["a b&c=d"]
    fields = {"payId": "ORD1", "param": "a b&c=d", "type": 1, "price": "10.00", "reallyPrice": "10.01"}
    assert query["sign"] == [sign(fields, "secret123", SignatureForm.RETURN_URL)]


def test_notify_failed_counts_as_paid():
    url = build_return_url(paid_order(state=int(OrderState.NOTIFY_FAILED)), "secret123")
    assert "sign=" in url


@pytest.mark.parametrize("state", [OrderState.PENDING, OrderState.CLOSED])
def test_unpaid_orders_are_rejected(state):
    with pytest.raises(OrderUnpaid):
        build_return_url(paid_order(state=int(state)), "secret123")


def test_missing_return_url():
    with pytest.raises(ReturnURLMissing):
        build_return_url(paid_order(return_url=""), "secret123")
