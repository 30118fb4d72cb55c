"""
Payment confirmation: settles the pending order whose allocated amount matches
an observed transfer, then tells the merchant.
"""
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.merchant_service.schemas import MerchantConfig, PayType
from services.merchant_service.repository import MerchantRepository
from services.merchant_service.service import MerchantService
from services.order_service.allocator import from_minor_units, to_minor_units
from services.order_service.id_generator import IDGenerator
from services.order_service.models import Order, OrderState
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService, parse_pay_type, unix_now
from shared.errors import (
    InvalidSignature,
    MerchantKeyMissing,
    NotifyURLMissing,
    OrderClosed,
    OrderNotFound,
)
from shared.observability.metrics import qrpay_orders_paid_total
from shared.security.signature import SignatureForm, verify

from .notifier import MerchantNotifier, NotifyResult
from .schemas import Heartbeat, PaymentPush

logger = structlog.get_logger(__name__)

UNMATCHED_PARAM = "unmatched transfer"
MATCH_ATTEMPTS = 3


@dataclass(frozen=True)
class Confirmation:
    order: Order
    matched: bool
    notify: NotifyResult


@dataclass(frozen=True)
class Redelivery:
    order: Order
    notify: NotifyResult


class PaymentService:

    def __init__(
        self,
        db: AsyncSession,
        notifier: MerchantNotifier,
        clock: Callable[[], int] = unix_now,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock

    async def _settle_pending(self, merchant: MerchantConfig, pay_type: PayType, really_price, now: int) -> Optional[Order]:
        """Moves the oldest matching pending order to Paid. None if nothing matched."""
        for _ in range(MATCH_ATTEMPTS):
            order = await OrderRepository.find_pending_by_amount(
                self.db, merchant.merchant_id, int(pay_type), really_price
            )
            if order is None:
                return None
            if await OrderRepository.transition(
                self.db,
                order.order_id,
                OrderState.PENDING,
                OrderState.PAID,
                release_slot=True,
                pay_date=now,
                close_date=now,
            ):
                return await OrderRepository.get_order(self.db, order.order_id)
            logger.info("payment_match_lost", order_id=order.order_id)
        return None

    async def _record_unmatched(self, merchant: MerchantConfig, pay_type: PayType, really_price, now: int) -> Order:
        order = Order(
            order_id=IDGenerator.generate_order_id(merchant.merchant_id, pay_type),
            pay_id=IDGenerator.generate_pay_id(merchant.merchant_id, pay_type),
            merchant_id=merchant.merchant_id,
            pay_type=int(pay_type),
            price=really_price,
            really_price=really_price,
            state=int(OrderState.PAID),
            create_date=now,
            pay_date=now,
            close_date=now,
            param=UNMATCHED_PARAM,
            notify_url="",
            return_url="",
            pay_url="",
            is_auto=0,
        )
        order = await OrderRepository.create_order(self.db, order)
        logger.warning(
            "payment_unmatched",
            merchant_id=merchant.merchant_id,
            pay_type=int(pay_type),
            price=str(really_price),
            order_id=order.order_id,
        )
        return order

    async def confirm_payment(self, push: PaymentPush) -> Confirmation:
        pay_type = parse_pay_type(push.pay_type)
        really_price = from_minor_units(to_minor_units(push.price))

        merchant = await MerchantService.get_config_by_app_id(self.db, push.app_id)
        if not merchant.secret_key:
            raise MerchantKeyMissing()
        fields = {"type": int(pay_type), "price": push.price, "t": push.t}
        if not verify(fields, merchant.secret_key, push.sign, SignatureForm.PUSH):
            raise InvalidSignature()

        # Orders past their window must not absorb the transfer
        await OrderService(self.db, clock=self.clock).close_expired_orders(merchant.merchant_id)

        now = self.clock()
        order = await self._settle_pending(merchant, pay_type, really_price, now)
        if order is None:
            order = await self._record_unmatched(merchant, pay_type, really_price, now)
            qrpay_orders_paid_total.labels(matched="false").inc()
            return Confirmation(order=order, matched=False, notify=NotifyResult.SKIPPED)

        qrpay_orders_paid_total.labels(matched="true").inc()
        logger.info("order_paid", order_id=order.order_id, merchant_id=merchant.merchant_id, really_price=str(really_price))

        result = await self.notifier.notify(order, merchant.secret_key)
        if result is NotifyResult.FAILED:
            await OrderRepository.transition(self.db, order.order_id, OrderState.PAID, OrderState.NOTIFY_FAILED)
            order = await OrderRepository.get_order(self.db, order.order_id)
            logger.warning("notify_failed", order_id=order.order_id, notify_url=order.notify_url)
        return Confirmation(order=order, matched=True, notify=result)

    async def record_heartbeat(self, beat: Heartbeat) -> int:
        """Marks the merchant's listener online. Returns the recorded time."""
        merchant = await MerchantService.get_config_by_app_id(self.db, beat.app_id)
        if not merchant.secret_key:
            raise MerchantKeyMissing()
        if not verify({"t": beat.t}, merchant.secret_key, beat.sign, SignatureForm.HEARTBEAT):
            raise InvalidSignature()
        now = self.clock()
        await MerchantRepository.record_heartbeat(self.db, merchant.merchant_id, now)
        logger.debug("monitor_heartbeat", merchant_id=merchant.merchant_id, last_heart=now)
        return now

    async def reissue(self, order_id: str) -> Redelivery:
        """
        Sends the webhook again. A pending order is settled by hand once the
        merchant acknowledges; a NotifyFailed order returns to Paid.
        """
        order = await OrderRepository.get_order(self.db, order_id)
        if order is None:
            raise OrderNotFound()
        state = OrderState(order.state)
        if state is OrderState.CLOSED:
            raise OrderClosed()
        if not order.notify_url:
            raise NotifyURLMissing()
        merchant = await MerchantService.get_config(self.db, order.merchant_id)
        if not merchant.secret_key:
            raise MerchantKeyMissing()

        result = await self.notifier.notify(order, merchant.secret_key)
        now = self.clock()
        if result.delivered and state is OrderState.PENDING:
            if await OrderRepository.transition(
                self.db,
                order_id,
                OrderState.PENDING,
                OrderState.PAID,
                release_slot=True,
                pay_date=now,
                close_date=now,
            ):
                qrpay_orders_paid_total.labels(matched="manual").inc()
        elif result.delivered and state is OrderState.NOTIFY_FAILED:
            await OrderRepository.transition(self.db, order_id, OrderState.NOTIFY_FAILED, OrderState.PAID)
        elif not result.delivered and state is OrderState.PAID:
            await OrderRepository.transition(self.db, order_id, OrderState.PAID, OrderState.NOTIFY_FAILED)

        order = await OrderRepository.get_order(self.db, order_id)
        logger.info("notify_reissued", order_id=order_id, result=result.value, state=order.state)
        return Redelivery(order=order, notify=result)
