"""
Amount allocation against an in-memory slot table.
"""
from decimal import Decimal

import pytest

from services.merchant_service.schemas import CollisionPolicy, PayType
from services.order_service.allocator import (
    AllocationState,
    AmountAllocator,
    from_minor_units,
    to_minor_units,
)
from shared.errors import CapacityExhausted, InvalidPrice


class SlotTable:
    """Stand-in for the reservation store: one owner per (amount, type)."""

    def __init__(self, taken=()):
        self.slots = {(amount, PayType.WECHAT): "other" for amount in taken}
        self.calls = []

    async def reserve(self, amount_minor, pay_type, order_id):
        self.calls.append(amount_minor)
        key = (amount_minor, pay_type)
        if key in self.slots:
            return False
        self.slots[key] = order_id
        return True


class TestMinorUnits:

    @pytest.mark.parametrize(
        "price, minor",
        [("10", 1000), ("10.5", 1050), ("0.01", 1), (Decimal("99.99"), 9999), (12.3, 1230)],
    )
    def test_exact_conversion(self, price, minor):
        assert to_minor_units(price) == minor

    @pytest.mark.parametrize("price", ["0", "-1", "1.001", "abc", "NaN", "Infinity"])
    def test_invalid_prices(self, price):
        with pytest.raises(InvalidPrice):
            to_minor_units(price)

    def test_largest_storable_price(self):
        assert to_minor_units("99999999.99") == 9_999_999_999

    @pytest.mark.parametrize("price", ["100000000.00", "100000000", "1e12"])
    def test_price_beyond_column_range(self, price):
        with pytest.raises(InvalidPrice):
            to_minor_units(price)

    def test_back_to_price(self):
        assert from_minor_units(1001) == Decimal("10.01")


class TestAllocationState:

    def test_increment_step(self):
        state = AllocationState(requested_minor=1000, amount_minor=1000)
        nxt = state.next_candidate(CollisionPolicy.INCREMENT)
        assert (nxt.amount_minor, nxt.attempt) == (1001, 1)
        assert state.amount_minor == 1000

    def test_decrement_step(self):
        nxt = AllocationState(1000, 1000, 3).next_candidate(CollisionPolicy.DECREMENT)
        assert (nxt.amount_minor, nxt.attempt) == (999, 4)

    def test_none_policy_has_no_next_candidate(self):
        assert AllocationState(1000, 1000).next_candidate(CollisionPolicy.NONE) is None


class TestAmountAllocator:

    async def test_free_amount_is_taken_as_is(self):
        table = SlotTable()
        allocation = await AmountAllocator(table.reserve).allocate("10.00", PayType.WECHAT, CollisionPolicy.INCREMENT, "o1")
        assert allocation.price == Decimal("10.00")
        assert allocation.attempts == 1
        assert allocation.reserved

    async def test_increment_walks_upwards(self):
        table = SlotTable(taken=[1000, 1001])
        allocation = await AmountAllocator(table.reserve).allocate("10.00", PayType.WECHAT, CollisionPolicy.INCREMENT, "o1")
        assert allocation.price == Decimal("10.02")
        assert table.calls == [1000, 1001, 1002]

    async def test_decrement_walks_downwards(self):
        table = SlotTable(taken=[1000])
        allocation = await AmountAllocator(table.reserve).allocate("10.00", PayType.WECHAT, CollisionPolicy.DECREMENT, "o1")
        assert allocation.price == Decimal("9.99")

    async def test_other_pay_type_does_not_collide(self):
        table = SlotTable(taken=[1000])
        allocation = await AmountAllocator(table.reserve).allocate("10.00", PayType.ALIPAY, CollisionPolicy.INCREMENT, "o1")
        assert allocation.price == Decimal("10.00")

    async def test_none_policy_keeps_requested_price_without_slot(self):
        table = SlotTable(taken=[1000])
        allocation = await AmountAllocator(table.reserve).allocate("10.00", PayType.WECHAT, CollisionPolicy.NONE, "o1")
        assert allocation.price == Decimal("10.00")
        assert not allocation.reserved
        assert table.calls == [1000]

    async def test_exhaustion_after_max_attempts(self):
        table = SlotTable(taken=range(1000, 1010))
        with pytest.raises(CapacityExhausted):
            await AmountAllocator(table.reserve, max_attempts=10).allocate(
                "10.00", PayType.WECHAT, CollisionPolicy.INCREMENT, "o1"
            )
        assert len(table.calls) == 10
        assert "o1" not in table.slots.values()

    async def test_decrement_never_reaches_zero(self):
        table = SlotTable(taken=[2, 1])
        with pytest.raises(CapacityExhausted):
            await AmountAllocator(table.reserve).allocate("0.02", PayType.WECHAT, CollisionPolicy.DECREMENT, "o1")
        assert table.calls == [2, 1]

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            AmountAllocator(SlotTable().reserve, max_attempts=0)

    async def test_increment_stops_at_column_maximum(self):
        table = SlotTable(taken=[9_999_999_999])
        with pytest.raises(CapacityExhausted):
            await AmountAllocator(table.reserve).allocate("99999999.99", PayType.WECHAT, CollisionPolicy.INCREMENT, "o1")
        assert table.calls == [9_999_999_999]
