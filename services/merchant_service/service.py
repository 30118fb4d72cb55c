from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.settings import DEFAULT_CLOSE_MINUTES
from shared.errors import MerchantNotFound, UnknownMerchant

from .models import Merchant
from .repository import MerchantRepository
from .schemas import CollisionPolicy, MerchantConfig, PayType, StaticQRCodeConfig


def resolve_close_minutes(value) -> int:
    """Merchant order window in minutes; unset or non-positive means the default."""
    if value is None or int(value) <= 0:
        return DEFAULT_CLOSE_MINUTES
    return int(value)


class MerchantService:

    @staticmethod
    async def _snapshot(db: AsyncSession, merchant: Merchant) -> MerchantConfig:
        qrcodes = await MerchantRepository.list_static_qrcodes(db, merchant.id)
        static = []
        for qr in qrcodes:
            try:
                pay_type = PayType(qr.pay_type)
            except ValueError:
                continue
            static.append(StaticQRCodeConfig(price=qr.price, pay_type=pay_type, pay_url=qr.pay_url))

        return MerchantConfig(
            merchant_id=merchant.id,
            app_id=merchant.app_id,
            secret_key=merchant.secret_key or "",
            notify_url=merchant.notify_url or "",
            return_url=merchant.return_url or "",
            close_minutes=resolve_close_minutes(merchant.close_minutes),
            policy=CollisionPolicy.from_setting(merchant.pay_qf),
            general_qrcodes={
                PayType.WECHAT: merchant.wxpay_url or "",
                PayType.ALIPAY: merchant.zfbpay_url or "",
            },
            static_qrcodes=tuple(static),
            monitor_state=merchant.monitor_state or 0,
            last_heart=merchant.last_heart,
        )

    @staticmethod
    async def get_config(db: AsyncSession, merchant_id: int) -> MerchantConfig:
        merchant = await MerchantRepository.get_by_id(db, merchant_id)
        if not merchant:
            raise MerchantNotFound(f"merchant {merchant_id} not found")
        return await MerchantService._snapshot(db, merchant)

    @staticmethod
    async def get_config_by_app_id(db: AsyncSession, app_id: str) -> MerchantConfig:
        if not app_id:
            raise UnknownMerchant("appId is required")
        merchant = await MerchantRepository.get_by_app_id(db, app_id)
        if not merchant:
            raise UnknownMerchant(f"invalid merchant id: {app_id}")
        return await MerchantService._snapshot(db, merchant)

    @staticmethod
    async def get_close_minutes(db: AsyncSession, merchant_id: int) -> int:
        """Falls back to the default window when the merchant row is gone."""
        merchant = await MerchantRepository.get_by_id(db, merchant_id)
        if not merchant:
            return DEFAULT_CLOSE_MINUTES
        return resolve_close_minutes(merchant.close_minutes)
