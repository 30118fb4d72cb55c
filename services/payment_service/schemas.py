from pydantic import BaseModel, ConfigDict, Field


class PaymentPush(BaseModel):
    """A payment observed by the merchant's phone listener."""
    model_config = ConfigDict(populate_by_name=True)

    app_id: str = Field(alias="appId", min_length=1)
    pay_type: int = Field(alias="type")
    # Kept as sent: the signature covers this exact text
    price: str = Field(min_length=1)
    t: str = Field(min_length=1)
    sign: str = Field(min_length=1)


class PaymentPushResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(serialization_alias="orderId")
    pay_id: str = Field(serialization_alias="payId")
    matched: bool
    state: int
    notify: str


class Heartbeat(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_id: str = Field(alias="appId", min_length=1)
    t: str = Field(min_length=1)
    sign: str = Field(min_length=1)


class HeartbeatResponse(BaseModel):
    app_id: str = Field(serialization_alias="appId")
    last_heart: int = Field(serialization_alias="lastHeart")
    online: bool = True


class ReissueResponse(BaseModel):
    order_id: str = Field(serialization_alias="orderId")
    pay_id: str = Field(serialization_alias="payId")
    state: int
    notify: str
