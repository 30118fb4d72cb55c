from sqlalchemy import BigInteger, Column, Integer, Numeric, String, UniqueConstraint
from shared.config.database import Base

class Merchant(Base):
    __tablename__ = "merchants"
    __table_args__ = {"schema": "merchant_schema"}

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(String(64), unique=True, nullable=False, index=True)
    secret_key = Column(String(128), nullable=False, default="")
    notify_url = Column(String(512), nullable=False, default="")
    return_url = Column(String(512), nullable=False, default="")
    close_minutes = Column(Integer, nullable=True) # order window; <=0 or NULL means default
    pay_qf = Column(Integer, nullable=False, default=0) # 0 none, 1 increment, 2 decrement
    wxpay_url = Column(String(512), nullable=False, default="") # general WeChat Pay QR
    zfbpay_url = Column(String(512), nullable=False, default="") # general Alipay QR
    monitor_state = Column(Integer, nullable=False, default=0) # 1 once the listener app has checked in
    last_heart = Column(BigInteger, nullable=True) # unix seconds of the last listener heartbeat

class StaticQRCode(Base):
    """A fixed-amount QR code provisioned by the merchant."""
    __tablename__ = "static_qrcodes"
    __table_args__ = (
        UniqueConstraint("merchant_id", "pay_type", "price", name="uq_static_qrcode"),
        {"schema": "merchant_schema"},
    )

    id = Column(Integer, primary_key=True, index=True)
    merchant_id = Column(Integer, nullable=False, index=True)
    pay_type = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    pay_url = Column(String(512), nullable=False)
