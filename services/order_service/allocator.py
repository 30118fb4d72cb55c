"""
Collision-free amount allocation.

A pending order owns its payable amount exclusively: the payer's transfer is
matched back to the order by (amount, payment type) alone, so two pending
orders must never share one. The only serialization point is the store's unique
constraint on reservation slots. Every attempt is its own atomic insert; the
loop as a whole is not atomic.

On a lost attempt the merchant's collision policy decides the next candidate:
increment or decrement by one minor unit, or (policy NONE) stop and charge the
requested amount without a slot. The NONE fallback can leave two pending
orders on one amount and is logged as a warning.
"""
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable, Optional

import structlog

from services.merchant_service.schemas import CollisionPolicy, PayType
from shared.errors import CapacityExhausted, InvalidPrice
from shared.observability.metrics import (
    qrpay_allocation_attempts,
    qrpay_allocation_collisions_total,
)

logger = structlog.get_logger(__name__)

MINOR_UNITS = 100
# Numeric(10, 2) holds at most 99999999.99
MAX_AMOUNT_MINOR = 10 ** 10 - 1
DEFAULT_MAX_ATTEMPTS = 10

# reserve(amount_minor, pay_type, order_id) -> True when the slot was created
ReserveFn = Callable[[int, PayType, str], Awaitable[bool]]


def to_minor_units(price) -> int:
    """Exact conversion of a positive price with at most two decimals."""
    try:
        amount = price if isinstance(price, Decimal) else Decimal(str(price).strip())
    except InvalidOperation as exc:
        raise InvalidPrice(f"not a price: {price!r}") from exc

    if not amount.is_finite() or amount <= 0:
        raise InvalidPrice()
    scaled = amount * MINOR_UNITS
    if scaled != scaled.to_integral_value():
        raise InvalidPrice()
    if scaled > MAX_AMOUNT_MINOR:
        raise InvalidPrice(f"price exceeds {from_minor_units(MAX_AMOUNT_MINOR)}")
    return int(scaled)


def from_minor_units(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / MINOR_UNITS).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class AllocationState:
    """Where the retry loop stands: attempts used so far and the next candidate."""
    requested_minor: int
    amount_minor: int
    attempt: int = 0

    def next_candidate(self, policy: CollisionPolicy) -> Optional["AllocationState"]:
        """
        State for the following attempt after a lost reservation, or None when
        the policy does not shift amounts.
        """
        if policy is CollisionPolicy.INCREMENT:
            step = 1
        elif policy is CollisionPolicy.DECREMENT:
            step = -1
        else:
            return None
        return replace(self, amount_minor=self.amount_minor + step, attempt=self.attempt + 1)


@dataclass(frozen=True)
class Allocation:
    amount_minor: int
    attempts: int
    reserved: bool # False only for the policy NONE fallback

    @property
    def price(self) -> Decimal:
        return from_minor_units(self.amount_minor)


class AmountAllocator:

    def __init__(self, reserve: ReserveFn, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.reserve = reserve
        self.max_attempts = max_attempts

    async def allocate(
        self,
        price,
        pay_type: PayType,
        policy: CollisionPolicy,
        order_id: str,
    ) -> Allocation:
        requested = to_minor_units(price)
        state = AllocationState(requested_minor=requested, amount_minor=requested)

        while state.attempt < self.max_attempts:
            if not 0 < state.amount_minor <= MAX_AMOUNT_MINOR:
                break

            if await self.reserve(state.amount_minor, pay_type, order_id):
                qrpay_allocation_attempts.observe(state.attempt + 1)
                if state.amount_minor != requested:
                    logger.info(
                        "amount_shifted",
                        order_id=order_id,
                        requested_minor=requested,
                        allocated_minor=state.amount_minor,
                        attempts=state.attempt + 1,
                    )
                return Allocation(state.amount_minor, state.attempt + 1, reserved=True)

            qrpay_allocation_collisions_total.labels(policy=policy.name.lower()).inc()
            next_state = state.next_candidate(policy)
            if next_state is None:
                logger.warning(
                    "amount_collision_unresolved",
                    order_id=order_id,
                    amount_minor=requested,
                    pay_type=int(pay_type),
                    policy=policy.name.lower(),
                )
                return Allocation(requested, state.attempt + 1, reserved=False)
            state = next_state

        logger.warning(
            "allocation_exhausted",
            order_id=order_id,
            requested_minor=requested,
            pay_type=int(pay_type),
            attempts=state.attempt,
        )
        raise CapacityExhausted()
