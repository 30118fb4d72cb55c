from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.config.settings import RATE_LIMIT_CREATE
from shared.security.dependencies import verify_internal_api_key
from shared.security.rate_limiter import limiter

from .models import Order
from .pages import payment_page_url, render_redirect_page
from .schemas import (
    CloseExpiredRequest,
    CountResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderDetail,
    OrderUpdate,
    PurgeRequest,
    ReturnURLResponse,
)
from .service import OrderService

# Management endpoints: internal callers only
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()  # Merchant and payment-page endpoints


def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(db)


def _creation_response(order: Order) -> OrderCreateResponse:
    return OrderCreateResponse(
        pay_id=order.pay_id,
        order_id=order.order_id,
        pay_type=order.pay_type,
        price=float(order.price),
        really_price=float(order.really_price),
        pay_url=order.pay_url,
        is_auto=order.is_auto,
        redirect_url=payment_page_url(order.order_id),
    )


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@public_router.post("/", response_model=OrderCreateResponse)
@limiter.limit(RATE_LIMIT_CREATE)
async def create_order(
    request: Request,
    payload: OrderCreate,
    service: OrderService = Depends(get_order_service),
):
    order = await service.create_order(payload)
    if payload.is_html == 1:
        return HTMLResponse(render_redirect_page(payment_page_url(order.order_id)))
    return _creation_response(order)


@router.post("/maintenance/close-expired", response_model=CountResponse)
async def close_expired_orders(
    payload: CloseExpiredRequest,
    service: OrderService = Depends(get_order_service),
):
    count = await service.close_expired_orders(payload.merchant_id, payload.limit)
    return CountResponse(count=count)


@router.post("/maintenance/purge", response_model=CountResponse)
async def purge_orders(
    payload: PurgeRequest,
    service: OrderService = Depends(get_order_service),
):
    count = await service.purge_orders(
        merchant_id=payload.merchant_id,
        limit=payload.limit,
        expire_days=payload.expire_days,
        only_closed=payload.only_closed,
    )
    return CountResponse(count=count)


@public_router.get("/{order_id}", response_model=OrderDetail)
async def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    return await service.get_order(order_id)


@public_router.get("/{order_id}/status")
async def check_order_status(order_id: str, service: OrderService = Depends(get_order_service)):
    """Polled by the payment page; the body shape depends on the order state."""
    result = await service.check_status(order_id)
    return result.model_dump(by_alias=True)


@public_router.get("/{order_id}/return-url", response_model=ReturnURLResponse)
async def get_return_url(order_id: str, service: OrderService = Depends(get_order_service)):
    return ReturnURLResponse(return_url=await service.build_return_url(order_id))


@router.post("/{order_id}/close", response_model=OrderDetail)
async def close_order(order_id: str, service: OrderService = Depends(get_order_service)):
    await service.close_order(order_id)
    return await service.get_order(order_id)


@router.patch("/{order_id}", response_model=OrderDetail)
async def update_order(
    order_id: str,
    changes: OrderUpdate,
    service: OrderService = Depends(get_order_service),
):
    await service.update_order(order_id, changes)
    return await service.get_order(order_id)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(order_id: str, service: OrderService = Depends(get_order_service)):
    await service.delete_order(order_id)
