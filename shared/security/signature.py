"""
Shared-secret signatures for merchant traffic.

All digests are lower-case hex MD5 over the UTF-8 bytes of a canonical string.
Prices take part with exactly two decimal places, whatever type the caller
hands in (``10``, ``10.0``, ``"10.00"`` and ``Decimal("10")`` sign alike). The
push form is the exception: the listener app signs the price text it sends,
so that form uses the raw text as received.

Canonical forms:

- creation:   ``payId={payId}&param={param}&type={type}&price={price}&key={key}``
- return url: ``{payId}{param}{type}{price}{reallyPrice}{key}``
- notify:     ``payId={payId}&param={param}&type={type}&price={price}&reallyPrice={reallyPrice}&key={key}``
- push:       ``{type}{price}{t}{key}`` (price as sent)
- heartbeat:  ``{t}{key}``
"""
import hashlib
import secrets
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

TWO_PLACES = Decimal("0.01")


class SignatureForm(str, Enum):
    CREATION = "creation"
    RETURN_URL = "return_url"
    NOTIFY = "notify"
    PUSH = "push"
    HEARTBEAT = "heartbeat"


def format_price(value: Any) -> str:
    """Render a price with exactly two decimal digits."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a price: {value!r}") from exc
    return f"{amount.quantize(TWO_PLACES):f}"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return str(value)


def canonical_string(form: SignatureForm, fields: Mapping[str, Any], secret: str) -> str:
    pay_id = _text(fields.get("payId"))
    param = _text(fields.get("param"))
    pay_type = _text(fields.get("type"))

    if form is SignatureForm.CREATION:
        price = format_price(fields["price"])
        return f"payId={pay_id}&param={param}&type={pay_type}&price={price}&key={secret}"

    if form is SignatureForm.RETURN_URL:
        price = format_price(fields["price"])
        really_price = format_price(fields["reallyPrice"])
        return f"{pay_id}{param}{pay_type}{price}{really_price}{secret}"

    if form is SignatureForm.NOTIFY:
        price = format_price(fields["price"])
        really_price = format_price(fields["reallyPrice"])
        return (
            f"payId={pay_id}&param={param}&type={pay_type}"
            f"&price={price}&reallyPrice={really_price}&key={secret}"
        )

    if form is SignatureForm.PUSH:
        return f"{pay_type}{_text(fields.get('price'))}{_text(fields.get('t'))}{secret}"

    if form is SignatureForm.HEARTBEAT:
        return f"{_text(fields.get('t'))}{secret}"

    raise ValueError(f"unknown signature form: {form!r}")


def sign(fields: Mapping[str, Any], secret: str, form: SignatureForm = SignatureForm.CREATION) -> str:
    digest = hashlib.md5(canonical_string(form, fields, secret).encode("utf-8"))
    return digest.hexdigest()


def verify(
    fields: Mapping[str, Any],
    secret: str,
    candidate: str | None,
    form: SignatureForm = SignatureForm.CREATION,
) -> bool:
    """Case-sensitive comparison; a missing candidate never verifies."""
    if not candidate:
        return False
    expected = sign(fields, secret, form)
    return secrets.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))
