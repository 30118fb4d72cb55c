from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config.database import engine, init_models
from shared.errors import register_exception_handlers
from shared.observability import setup_observability
from shared.security.rate_limiter import limiter
from services.merchant_service import models as merchant_models  # noqa: F401
from .router import router, public_router
from .models import Order, ReservationSlot  # noqa: F401

order_app = FastAPI(title="Order Service", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(order_app, "order_service")

order_app.state.limiter = limiter
order_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(order_app)

order_app.include_router(public_router)
order_app.include_router(router)

@order_app.on_event("startup")
async def startup_event():
    await init_models(engine)
