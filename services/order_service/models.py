from enum import IntEnum

from sqlalchemy import BigInteger, Column, Integer, Numeric, String, Text, UniqueConstraint
from shared.config.database import Base


class OrderState(IntEnum):
    CLOSED = -1
    PENDING = 0
    PAID = 1
    NOTIFY_FAILED = 2 # paid, merchant webhook not delivered

    @property
    def is_paid(self) -> bool:
        return self in (OrderState.PAID, OrderState.NOTIFY_FAILED)

    @property
    def text(self) -> str:
        return {
            OrderState.CLOSED: "closed",
            OrderState.PENDING: "pending",
            OrderState.PAID: "paid",
            OrderState.NOTIFY_FAILED: "notify failed",
        }[self]


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("merchant_id", "pay_id", name="uq_order_merchant_pay_id"),
        {"schema": "order_schema"},
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), unique=True, nullable=False, index=True)
    pay_id = Column(String(128), nullable=False) # merchant-supplied order id
    merchant_id = Column(Integer, nullable=False, index=True)
    pay_type = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    really_price = Column(Numeric(10, 2), nullable=False) # allocated amount the payer sends
    state = Column(Integer, nullable=False, default=OrderState.PENDING, index=True)
    create_date = Column(BigInteger, nullable=False) # unix seconds
    pay_date = Column(BigInteger, nullable=True)
    close_date = Column(BigInteger, nullable=True)
    param = Column(Text, nullable=False, default="")
    subject = Column(String(255), nullable=True)
    body = Column(Text, nullable=True)
    notify_url = Column(String(512), nullable=False, default="")
    return_url = Column(String(512), nullable=False, default="")
    pay_url = Column(String(512), nullable=False, default="")
    is_auto = Column(Integer, nullable=False, default=1) # 0 static QR match, 1 general QR


class ReservationSlot(Base):
    """Exclusive claim on an (amount, pay type) pair while its order is pending."""
    __tablename__ = "reservation_slots"
    __table_args__ = (
        UniqueConstraint("amount_minor", "pay_type", name="uq_reservation_amount_type"),
        {"schema": "order_schema"},
    )

    id = Column(Integer, primary_key=True)
    amount_minor = Column(BigInteger, nullable=False)
    pay_type = Column(Integer, nullable=False)
    order_id = Column(String(64), nullable=False, index=True)
    created_at = Column(BigInteger, nullable=False)
