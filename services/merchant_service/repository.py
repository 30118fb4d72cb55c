from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Merchant, StaticQRCode


class MerchantRepository:

    @staticmethod
    async def create(db: AsyncSession, merchant: Merchant) -> Merchant:
        db.add(merchant)
        await db.commit()
        await db.refresh(merchant)
        return merchant

    @staticmethod
    async def get_by_id(db: AsyncSession, merchant_id: int) -> Optional[Merchant]:
        result = await db.execute(
            select(Merchant)
            .where(Merchant.id == merchant_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_by_app_id(db: AsyncSession, app_id: str) -> Optional[Merchant]:
        result = await db.execute(
            select(Merchant)
            .where(Merchant.app_id == app_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def add_static_qrcode(db: AsyncSession, qrcode: StaticQRCode) -> StaticQRCode:
        db.add(qrcode)
        await db.commit()
        await db.refresh(qrcode)
        return qrcode

    @staticmethod
    async def list_static_qrcodes(db: AsyncSession, merchant_id: int) -> List[StaticQRCode]:
        result = await db.execute(
            select(StaticQRCode)
            .where(StaticQRCode.merchant_id == merchant_id)
            .order_by(StaticQRCode.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def record_heartbeat(db: AsyncSession, merchant_id: int, now: int) -> None:
        await db.execute(
            update(Merchant)
            .where(Merchant.id == merchant_id)
            .values(last_heart=now, monitor_state=1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
