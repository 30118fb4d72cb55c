from dataclasses import dataclass, field
from decimal import Decimal
from enum import IntEnum
from typing import Optional, Tuple


class PayType(IntEnum):
    WECHAT = 1
    ALIPAY = 2

    @property
    def label(self) -> str:
        return "WeChat Pay" if self is PayType.WECHAT else "Alipay"


class CollisionPolicy(IntEnum):
    """What to do when the wanted amount is already held by another pending order."""
    NONE = 0
    INCREMENT = 1
    DECREMENT = 2

    @classmethod
    def from_setting(cls, value: Optional[int]) -> "CollisionPolicy":
        try:
            return cls(int(value or 0))
        except ValueError:
            return cls.NONE


@dataclass(frozen=True)
class StaticQRCodeConfig:
    price: Decimal
    pay_type: PayType
    pay_url: str


@dataclass(frozen=True)
class MerchantConfig:
    """
    Immutable snapshot of everything the order engine reads from a merchant.
    Detached from the ORM so it survives session rollbacks during allocation.
    """
    merchant_id: int
    app_id: str
    secret_key: str
    notify_url: str
    return_url: str
    close_minutes: int
    policy: CollisionPolicy
    general_qrcodes: dict = field(default_factory=dict)
    static_qrcodes: Tuple[StaticQRCodeConfig, ...] = ()
    monitor_state: int = 0
    last_heart: Optional[int] = None

    def general_qrcode(self, pay_type: PayType) -> str:
        return self.general_qrcodes.get(pay_type, "")

    def monitor_online(self, now: int, timeout_seconds: int = 0) -> bool:
        """
        The payment listener has checked in, and (when ``timeout_seconds`` is
        positive) did so recently enough.
        """
        if self.monitor_state != 1:
            return False
        if timeout_seconds <= 0:
            return True
        return self.last_heart is not None and now - self.last_heart <= timeout_seconds
