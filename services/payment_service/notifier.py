"""
Merchant webhook delivery after a payment is confirmed.

The current protocol is a form POST signed with the notify form. Merchants on
the older protocol answer something other than ``success`` to it, so delivery
falls back to a GET carrying the return-url-form signature in the query string.
Transport errors count as a failed attempt and are never raised.
"""
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog

from shared.config.settings import NOTIFY_TIMEOUT_SECONDS
from shared.observability.metrics import qrpay_notify_total
from shared.security.signature import SignatureForm, format_price, sign

logger = structlog.get_logger(__name__)

SUCCESS_BODY = "success"


class NotifyResult(str, Enum):
    SUCCESS = "success"
    LEGACY_SUCCESS = "legacy_success"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def delivered(self) -> bool:
        return self in (NotifyResult.SUCCESS, NotifyResult.LEGACY_SUCCESS)


class MerchantNotifier:

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = NOTIFY_TIMEOUT_SECONDS):
        self._client = client
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _fields(order) -> dict:
        return {
            "payId": order.pay_id,
            "param": order.param or "",
            "type": int(order.pay_type),
            "price": format_price(order.price),
            "reallyPrice": format_price(order.really_price),
        }

    async def _attempt(self, method: str, url: str, **kwargs) -> bool:
        try:
            response = await self._get_client().request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("notify_transport_error", method=method, url=url, error=repr(exc))
            return False
        body = response.text.strip()
        logger.info("notify_response", method=method, url=url, status=response.status_code, body=body[:200])
        return body == SUCCESS_BODY

    async def notify(self, order, secret: str) -> NotifyResult:
        if not order.notify_url:
            qrpay_notify_total.labels(result=NotifyResult.SKIPPED.value).inc()
            return NotifyResult.SKIPPED

        fields = self._fields(order)
        form = {**fields, "sign": sign(fields, secret, SignatureForm.NOTIFY)}
        if await self._attempt("POST", order.notify_url, data=form):
            result = NotifyResult.SUCCESS
        else:
            legacy = {**fields, "sign": sign(fields, secret, SignatureForm.RETURN_URL)}
            separator = "&" if "?" in order.notify_url else "?"
            legacy_url = f"{order.notify_url}{separator}{urlencode(legacy)}"
            if await self._attempt("GET", legacy_url):
                result = NotifyResult.LEGACY_SUCCESS
            else:
                result = NotifyResult.FAILED

        qrpay_notify_total.labels(result=result.value).inc()
        logger.info("merchant_notified", order_id=order.order_id, result=result.value)
        return result
