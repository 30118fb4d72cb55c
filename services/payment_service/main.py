from fastapi import FastAPI

from shared.config.database import engine, init_models
from shared.errors import register_exception_handlers
from shared.observability import setup_observability
from services.merchant_service import models as merchant_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from .router import get_notifier, public_router, router

payment_app = FastAPI(title="Payment Service", version="1.0.0")

setup_observability(payment_app, "payment_service")
register_exception_handlers(payment_app)

payment_app.include_router(public_router)
payment_app.include_router(router)


@payment_app.on_event("startup")
async def startup_event():
    await init_models(engine)


@payment_app.on_event("shutdown")
async def shutdown_event():
    await get_notifier().aclose()
