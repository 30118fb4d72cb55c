from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key

from .notifier import MerchantNotifier
from .schemas import (
    Heartbeat,
    HeartbeatResponse,
    PaymentPush,
    PaymentPushResponse,
    ReissueResponse,
)
from .service import PaymentService

# Management endpoints: internal callers only
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()  # Listener app endpoints

_notifier = MerchantNotifier()


def get_notifier() -> MerchantNotifier:
    return _notifier


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    notifier: MerchantNotifier = Depends(get_notifier),
) -> PaymentService:
    return PaymentService(db, notifier)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


@public_router.post("/push", response_model=PaymentPushResponse)
async def push_payment(payload: PaymentPush, service: PaymentService = Depends(get_payment_service)):
    """Signed with the merchant key; an unmatched transfer is still acknowledged."""
    confirmation = await service.confirm_payment(payload)
    return PaymentPushResponse(
        order_id=confirmation.order.order_id,
        pay_id=confirmation.order.pay_id,
        matched=confirmation.matched,
        state=confirmation.order.state,
        notify=confirmation.notify.value,
    )


@public_router.post("/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(payload: Heartbeat, service: PaymentService = Depends(get_payment_service)):
    last_heart = await service.record_heartbeat(payload)
    return HeartbeatResponse(app_id=payload.app_id, last_heart=last_heart)


@router.post("/orders/{order_id}/reissue", response_model=ReissueResponse)
async def reissue_notify(order_id: str, service: PaymentService = Depends(get_payment_service)):
    redelivery = await service.reissue(order_id)
    return ReissueResponse(
        order_id=redelivery.order.order_id,
        pay_id=redelivery.order.pay_id,
        state=redelivery.order.state,
        notify=redelivery.notify.value,
    )
