"""
Order lifecycle: creation, reads with lazy expiration, explicit close, edits,
deletion, the batch sweep and the purge.

State only ever moves through ``OrderRepository.transition`` (a compare-and-swap
on ``state``) or conditional deletes, so a payment confirmation landing at the
same moment as an expiry or a close always wins cleanly: whichever write
finds the order still pending applies, the other one reports what it found.
"""
import time
from typing import Callable, List, Optional, Union

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.merchant_service.schemas import MerchantConfig, PayType
from services.merchant_service.service import MerchantService
from shared.config.settings import (
    ALLOCATION_MAX_ATTEMPTS,
    MONITOR_HEARTBEAT_TIMEOUT_SECONDS,
    PURGE_DEFAULT_DAYS,
    RESERVATION_ORPHAN_GRACE_SECONDS,
    SWEEP_DEFAULT_LIMIT,
)
from shared.errors import (
    DuplicatePayId,
    GatewayError,
    InvalidPayType,
    InvalidSignature,
    MerchantKeyMissing,
    MonitorOffline,
    OrderClosed,
    OrderExists,
    OrderNotFound,
    OrderNotPending,
    OrderPaid,
)
from shared.observability.metrics import (
    qrpay_order_create_failures_total,
    qrpay_orders_created_total,
    qrpay_orders_expired_total,
)
from shared.security.signature import SignatureForm, verify

from .allocator import Allocation, AmountAllocator, to_minor_units
from .id_generator import IDGenerator
from .models import Order, OrderState
from .qrcode_matcher import match_qrcode
from .repository import OrderRepository, ReservationRepository
from .return_url import build_return_url
from .schemas import OrderCreate, OrderDetail, OrderUpdate, PaidStatus, UnpaidStatus

logger = structlog.get_logger(__name__)


def unix_now() -> int:
    return int(time.time())


def remaining_seconds(order: Order, close_minutes: int, now: int) -> int:
    return max(0, close_minutes * 60 - (now - int(order.create_date)))


def is_expired(order: Order, close_minutes: int, now: int) -> bool:
    return (
        order.state == OrderState.PENDING
        and now - int(order.create_date) > close_minutes * 60
    )


def parse_pay_type(value) -> PayType:
    try:
        return PayType(int(value))
    except (TypeError, ValueError):
        raise InvalidPayType(f"unsupported payment type: {value!r}")


class OrderService:

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], int] = unix_now,
        max_attempts: int = ALLOCATION_MAX_ATTEMPTS,
    ):
        self.db = db
        self.clock = clock
        self.max_attempts = max_attempts

    # ------------------------------------------------------------------ create

    async def create_order(self, data: OrderCreate) -> Order:
        try:
            order = await self._create_order(data)
        except GatewayError as exc:
            qrpay_order_create_failures_total.labels(code=exc.code).inc()
            raise
        qrpay_orders_created_total.labels(pay_type=str(order.pay_type), is_auto=str(order.is_auto)).inc()
        return order

    async def _create_order(self, data: OrderCreate) -> Order:
        pay_type = parse_pay_type(data.pay_type)
        to_minor_units(data.price)

        merchant = await MerchantService.get_config_by_app_id(self.db, data.app_id)
        if not merchant.secret_key:
            raise MerchantKeyMissing()

        fields = {"payId": data.pay_id, "param": data.param, "type": int(pay_type), "price": data.price}
        if not verify(fields, merchant.secret_key, data.sign, SignatureForm.CREATION):
            raise InvalidSignature()
        if not merchant.monitor_online(self.clock(), MONITOR_HEARTBEAT_TIMEOUT_SECONDS):
            raise MonitorOffline()

        if await OrderRepository.get_by_pay_id(self.db, merchant.merchant_id, data.pay_id):
            raise DuplicatePayId()

        order_id = IDGenerator.generate_order_id(merchant.merchant_id, pay_type)
        if await OrderRepository.exists_by_order_id(self.db, order_id):
            raise OrderExists()

        allocator = AmountAllocator(self._reserve, max_attempts=self.max_attempts)
        allocation = await allocator.allocate(data.price, pay_type, merchant.policy, order_id)

        try:
            return await self._persist(data, merchant, pay_type, order_id, allocation)
        except (GatewayError, SQLAlchemyError):
            if allocation.reserved:
                await self.db.rollback()
                await ReservationRepository.release(self.db, order_id)
            raise

    async def _reserve(self, amount_minor: int, pay_type: PayType, order_id: str) -> bool:
        return await ReservationRepository.create_if_absent(
            self.db, amount_minor, pay_type, order_id, now=self.clock()
        )

    async def _persist(
        self,
        data: OrderCreate,
        merchant: MerchantConfig,
        pay_type: PayType,
        order_id: str,
        allocation: Allocation,
    ) -> Order:
        qrcode = match_qrcode(allocation.price, pay_type, merchant)
        order = Order(
            order_id=order_id,
            pay_id=data.pay_id,
            merchant_id=merchant.merchant_id,
            pay_type=int(pay_type),
            price=data.price,
            really_price=allocation.price,
            state=int(OrderState.PENDING),
            create_date=self.clock(),
            param=data.param or "",
            subject=data.subject,
            body=data.body,
            notify_url=data.notify_url or merchant.notify_url,
            return_url=data.return_url or merchant.return_url,
            pay_url=qrcode.pay_url,
            is_auto=qrcode.is_auto,
        )
        try:
            order = await OrderRepository.create_order(self.db, order)
        except IntegrityError:
            await self.db.rollback()
            if await OrderRepository.get_by_pay_id(self.db, merchant.merchant_id, data.pay_id):
                raise DuplicatePayId()
            raise OrderExists()

        logger.info(
            "order_created",
            order_id=order.order_id,
            merchant_id=merchant.merchant_id,
            pay_type=int(pay_type),
            price=str(data.price),
            really_price=str(allocation.price),
            is_auto=qrcode.is_auto,
        )
        return order

    # ------------------------------------------------------------------- reads

    async def _load(self, order_id: str) -> Order:
        order = await OrderRepository.get_order(self.db, order_id)
        if not order:
            raise OrderNotFound()
        return order

    async def _close_pending(self, order_id: str, now: int) -> bool:
        return await OrderRepository.transition(
            self.db, order_id, OrderState.PENDING, OrderState.CLOSED, release_slot=True, close_date=now
        )

    async def _expire_if_due(self, order: Order, close_minutes: int, now: int, trigger: str = "read") -> Order:
        """Closes a pending order whose window has elapsed; returns the current view."""
        if not is_expired(order, close_minutes, now):
            return order
        if await self._close_pending(order.order_id, now):
            qrpay_orders_expired_total.labels(trigger=trigger).inc()
            logger.info("order_expired", order_id=order.order_id, trigger=trigger)
        # Reload either way: a confirmation may have beaten us to it
        return await self._load(order.order_id)

    async def get_order(self, order_id: str) -> OrderDetail:
        order = await self._load(order_id)
        close_minutes = await MerchantService.get_close_minutes(self.db, order.merchant_id)
        now = self.clock()
        order = await self._expire_if_due(order, close_minutes, now)
        state = OrderState(order.state)

        return OrderDetail(
            pay_id=order.pay_id,
            order_id=order.order_id,
            pay_type=order.pay_type,
            price=float(order.price),
            really_price=float(order.really_price),
            pay_url=order.pay_url,
            is_auto=order.is_auto,
            state=int(state),
            state_text=state.text,
            time_out=close_minutes,
            date=int(order.create_date),
            remaining_seconds=remaining_seconds(order, close_minutes, now) if state == OrderState.PENDING else 0,
            return_url=order.return_url or "",
            param=order.param or "",
            subject=order.subject,
            body=order.body,
        )

    async def check_status(self, order_id: str) -> Union[PaidStatus, UnpaidStatus]:
        order = await self._load(order_id)
        close_minutes = await MerchantService.get_close_minutes(self.db, order.merchant_id)
        now = self.clock()
        order = await self._expire_if_due(order, close_minutes, now)
        state = OrderState(order.state)

        if state.is_paid:
            redirect_url = ""
            if order.return_url:
                merchant = await MerchantService.get_config(self.db, order.merchant_id)
                redirect_url = build_return_url(order, merchant.secret_key)
            return PaidStatus(
                redirect_url=redirect_url,
                remaining_seconds=0,
                return_url=order.return_url or "",
                param=order.param or "",
            )

        if state == OrderState.CLOSED:
            return UnpaidStatus(
                state=int(OrderState.CLOSED),
                remaining_seconds=0,
                return_url=order.return_url or "",
                param=order.param or "",
            )

        return UnpaidStatus(
            state=int(OrderState.PENDING),
            remaining_seconds=remaining_seconds(order, close_minutes, now),
            return_url=order.return_url or "",
            param=order.param or "",
        )

    async def build_return_url(self, order_id: str) -> str:
        order = await self._load(order_id)
        merchant = await MerchantService.get_config(self.db, order.merchant_id)
        return build_return_url(order, merchant.secret_key)

    # ----------------------------------------------------------------- mutate

    @staticmethod
    def _raise_for_terminal(order: Order) -> None:
        state = OrderState(order.state)
        if state.is_paid:
            raise OrderPaid()
        if state == OrderState.CLOSED:
            raise OrderClosed()

    async def close_order(self, order_id: str) -> Order:
        order = await self._load(order_id)
        self._raise_for_terminal(order)

        if not await self._close_pending(order_id, self.clock()):
            # Lost the race; report whatever the order became
            self._raise_for_terminal(await self._load(order_id))
            raise OrderNotPending()

        logger.info("order_closed", order_id=order_id)
        return await self._load(order_id)

    async def update_order(self, order_id: str, changes: OrderUpdate) -> Order:
        order = await self._load(order_id)
        close_minutes = await MerchantService.get_close_minutes(self.db, order.merchant_id)
        order = await self._expire_if_due(order, close_minutes, self.clock())
        if order.state != OrderState.PENDING:
            raise OrderNotPending()

        values = changes.model_dump(exclude_none=True)
        if not values:
            return order
        if not await OrderRepository.update_pending_fields(self.db, order_id, values):
            raise OrderNotPending()

        logger.info("order_updated", order_id=order_id, fields=sorted(values))
        return await self._load(order_id)

    async def delete_order(self, order_id: str) -> None:
        order = await self._load(order_id)
        if OrderState(order.state).is_paid:
            raise OrderPaid()

        if not await OrderRepository.delete_unpaid(self.db, order_id):
            current = await OrderRepository.get_order(self.db, order_id)
            if current is None:
                raise OrderNotFound()
            raise OrderPaid()

        logger.info("order_deleted", order_id=order_id)

    # ------------------------------------------------------------------ batch

    async def _close_expired_for_merchant(self, merchant_id: int, limit: int, close_minutes: int, now: int) -> int:
        candidates = await OrderRepository.list_expired_pending(
            self.db, merchant_id, created_before=now - close_minutes * 60, limit=limit
        )
        closed: List[str] = []
        for order_id in candidates:
            if await self._close_pending(order_id, now):
                closed.append(order_id)

        if closed:
            qrpay_orders_expired_total.labels(trigger="sweep").inc(len(closed))
        return len(closed)

    async def close_expired_orders(self, merchant_id: Optional[int] = None, limit: int = 0) -> int:
        """
        Batch sweep. Each merchant uses its own window; a failing merchant is
        logged and skipped. Stops once ``limit`` orders have been closed.
        """
        if limit <= 0:
            limit = SWEEP_DEFAULT_LIMIT
        now = self.clock()

        if merchant_id is not None:
            close_minutes = await MerchantService.get_close_minutes(self.db, merchant_id)
            total = await self._close_expired_for_merchant(merchant_id, limit, close_minutes, now)
        else:
            total = 0
            for mid in await OrderRepository.get_merchants_with_pending_orders(self.db):
                try:
                    close_minutes = await MerchantService.get_close_minutes(self.db, mid)
                    total += await self._close_expired_for_merchant(mid, limit - total, close_minutes, now)
                except SQLAlchemyError as exc:
                    await self.db.rollback()
                    logger.error("sweep_merchant_failed", merchant_id=mid, error=str(exc))
                    continue
                if total >= limit:
                    break

        orphans = await ReservationRepository.purge_orphans(
            self.db, created_before=now - RESERVATION_ORPHAN_GRACE_SECONDS
        )
        logger.info("sweep_finished", merchant_id=merchant_id, closed=total, orphan_slots=orphans)
        return total

    async def purge_orders(
        self,
        merchant_id: Optional[int] = None,
        limit: int = 0,
        expire_days: int = 0,
        only_closed: bool = True,
    ) -> int:
        """Deletes old unpaid orders. Paid orders are never purged."""
        if limit <= 0:
            limit = SWEEP_DEFAULT_LIMIT
        if expire_days <= 0:
            expire_days = PURGE_DEFAULT_DAYS

        candidates = await OrderRepository.list_purgeable(
            self.db,
            created_before=self.clock() - expire_days * 86400,
            limit=limit,
            merchant_id=merchant_id,
            only_closed=only_closed,
        )
        deleted = [oid for oid in candidates if await OrderRepository.delete_unpaid(self.db, oid)]

        logger.info("orders_purged", merchant_id=merchant_id, deleted=len(deleted), only_closed=only_closed)
        return len(deleted)
