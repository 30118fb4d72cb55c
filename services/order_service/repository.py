from typing import List, Optional

from sqlalchemy import delete, exists, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order, OrderState, ReservationSlot

UNPAID_STATES = (int(OrderState.PENDING), int(OrderState.CLOSED))

# INSERT ... ON CONFLICT DO NOTHING per supported backend
CONFLICT_FREE_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _release_stmt(order_id: str):
    return (
        delete(ReservationSlot)
        .where(ReservationSlot.order_id == order_id)
        .execution_options(synchronize_session=False)
    )


class OrderRepository:
    """
    All state changes are conditional single-statement writes; callers learn
    whether they won from the returned row count.
    """

    @staticmethod
    async def create_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        await db.commit()
        await db.refresh(order)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_by_pay_id(db: AsyncSession, merchant_id: int, pay_id: str) -> Optional[Order]:
        result = await db.execute(
            select(Order).where(Order.merchant_id == merchant_id, Order.pay_id == pay_id)
        )
        return result.scalars().first()

    @staticmethod
    async def exists_by_order_id(db: AsyncSession, order_id: str) -> bool:
        result = await db.execute(select(exists().where(Order.order_id == order_id)))
        return bool(result.scalar())

    @staticmethod
    async def find_pending_by_amount(db: AsyncSession, merchant_id: int, pay_type: int, really_price) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(
                Order.merchant_id == merchant_id,
                Order.pay_type == pay_type,
                Order.really_price == really_price,
                Order.state == int(OrderState.PENDING),
            )
            .order_by(Order.create_date, Order.id)
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def transition(
        db: AsyncSession,
        order_id: str,
        expected: OrderState,
        new: OrderState,
        release_slot: bool = False,
        **timestamps,
    ) -> bool:
        """
        Compare-and-swap on state. Only the state and the given timestamps are
        written. With ``release_slot`` the order's reservation is dropped in the
        same transaction when the swap wins.
        """
        stmt = (
            update(Order)
            .where(Order.order_id == order_id, Order.state == int(expected))
            .values(state=int(new), **timestamps)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        changed = result.rowcount == 1
        if changed and release_slot:
            await db.execute(_release_stmt(order_id))
        await db.commit()
        return changed

    @staticmethod
    async def update_pending_fields(db: AsyncSession, order_id: str, values: dict) -> bool:
        stmt = (
            update(Order)
            .where(Order.order_id == order_id, Order.state == int(OrderState.PENDING))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount == 1

    @staticmethod
    async def delete_unpaid(db: AsyncSession, order_id: str) -> bool:
        """Deletes a pending or closed order together with its reservation."""
        stmt = (
            delete(Order)
            .where(Order.order_id == order_id, Order.state.in_(UNPAID_STATES))
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        deleted = result.rowcount == 1
        if deleted:
            await db.execute(_release_stmt(order_id))
        await db.commit()
        return deleted

    @staticmethod
    async def get_merchants_with_pending_orders(db: AsyncSession) -> List[int]:
        result = await db.execute(
            select(Order.merchant_id)
            .where(Order.state == int(OrderState.PENDING))
            .distinct()
            .order_by(Order.merchant_id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_expired_pending(db: AsyncSession, merchant_id: int, created_before: int, limit: int) -> List[str]:
        result = await db.execute(
            select(Order.order_id)
            .where(
                Order.merchant_id == merchant_id,
                Order.state == int(OrderState.PENDING),
                Order.create_date < created_before,
            )
            .order_by(Order.create_date, Order.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_purgeable(
        db: AsyncSession,
        created_before: int,
        limit: int,
        merchant_id: Optional[int] = None,
        only_closed: bool = True,
    ) -> List[str]:
        states = (int(OrderState.CLOSED),) if only_closed else UNPAID_STATES
        stmt = (
            select(Order.order_id)
            .where(Order.state.in_(states), Order.create_date < created_before)
            .order_by(Order.create_date, Order.id)
            .limit(limit)
        )
        if merchant_id is not None:
            stmt = stmt.where(Order.merchant_id == merchant_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())


class ReservationRepository:

    @staticmethod
    async def create_if_absent(db: AsyncSession, amount_minor: int, pay_type: int, order_id: str, now: int) -> bool:
        """
        One atomic insert; the unique constraint decides the winner. A lost race
        inserts nothing and raises nothing, so the session is never rolled back
        and loaded instances stay usable.
        """
        insert = CONFLICT_FREE_INSERTS[db.get_bind().dialect.name]
        stmt = (
            insert(ReservationSlot.__table__)
            .values(
                amount_minor=amount_minor,
                pay_type=int(pay_type),
                order_id=order_id,
                created_at=now,
            )
            .on_conflict_do_nothing()
        )
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount == 1

    @staticmethod
    async def release(db: AsyncSession, order_id: str) -> int:
        result = await db.execute(_release_stmt(order_id))
        await db.commit()
        return result.rowcount

    @staticmethod
    async def get_for_order(db: AsyncSession, order_id: str) -> List[ReservationSlot]:
        result = await db.execute(
            select(ReservationSlot).where(ReservationSlot.order_id == order_id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def purge_orphans(db: AsyncSession, created_before: int) -> int:
        """
        Slots past the grace period that no pending order owns: the order was
        never persisted, is gone, or left Pending without its slot being freed.
        """
        held_by_pending = (
            select(Order.id)
            .where(
                Order.order_id == ReservationSlot.order_id,
                Order.state == int(OrderState.PENDING),
            )
            .correlate(ReservationSlot)
            .exists()
        )
        result = await db.execute(
            delete(ReservationSlot)
            .where(ReservationSlot.created_at < created_before, ~held_by_pending)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount
