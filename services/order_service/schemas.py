from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _Wire(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(populate_by_name=True)


class OrderCreate(_Wire):
    app_id: str = Field(alias="appId", min_length=1)
    pay_id: str = Field(alias="payId", min_length=1, max_length=128)
    param: str = ""
    pay_type: int = Field(alias="type")
    price: Decimal
    sign: str = Field(min_length=1)
    notify_url: Optional[str] = Field(default=None, alias="notifyUrl")
    return_url: Optional[str] = Field(default=None, alias="returnUrl")
    is_html: int = Field(default=0, alias="isHtml")
    subject: Optional[str] = Field(default=None, max_length=255)
    body: Optional[str] = None


class OrderCreateResponse(_Wire):
    pay_id: str = Field(serialization_alias="payId")
    order_id: str = Field(serialization_alias="orderId")
    pay_type: int = Field(serialization_alias="payType")
    price: float
    really_price: float = Field(serialization_alias="reallyPrice")
    pay_url: str = Field(serialization_alias="payUrl")
    is_auto: int = Field(serialization_alias="isAuto")
    redirect_url: str = Field(serialization_alias="redirectUrl")


class OrderDetail(_Wire):
    pay_id: str = Field(serialization_alias="payId")
    order_id: str = Field(serialization_alias="orderId")
    pay_type: int = Field(serialization_alias="payType")
    price: float
    really_price: float = Field(serialization_alias="reallyPrice")
    pay_url: str = Field(serialization_alias="payUrl")
    is_auto: int = Field(serialization_alias="isAuto")
    state: int
    state_text: str = Field(serialization_alias="stateText")
    time_out: int = Field(serialization_alias="timeOut")
    date: int
    remaining_seconds: int = Field(serialization_alias="remainingSeconds")
    return_url: str
    param: str
    subject: Optional[str] = None
    body: Optional[str] = None


class PaidStatus(_Wire):
    redirect_url: str = Field(serialization_alias="redirectUrl")
    remaining_seconds: int = Field(default=0, serialization_alias="remainingSeconds")
    return_url: str
    param: str


class UnpaidStatus(_Wire):
    """Pending (state 0) or closed/expired (state -1)."""
    state: int
    remaining_seconds: int = Field(serialization_alias="remainingSeconds")
    return_url: str
    param: str


class OrderUpdate(_Wire):
    subject: Optional[str] = Field(default=None, max_length=255)
    body: Optional[str] = None
    notify_url: Optional[str] = Field(default=None, alias="notifyUrl")
    return_url: Optional[str] = Field(default=None, alias="returnUrl")


class CloseExpiredRequest(_Wire):
    merchant_id: Optional[int] = Field(default=None, alias="merchantId")
    limit: int = 0


class PurgeRequest(_Wire):
    merchant_id: Optional[int] = Field(default=None, alias="merchantId")
    limit: int = 0
    expire_days: int = Field(default=0, alias="expireDays")
    only_closed: bool = Field(default=True, alias="onlyClosed")


class CountResponse(BaseModel):
    count: int


class ReturnURLResponse(_Wire):
    return_url: str = Field(serialization_alias="returnUrl")
