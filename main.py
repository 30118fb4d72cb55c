from fastapi import FastAPI

from shared.config.database import engine, init_models

# IMPORTANT: import models so they register with Base
from services.merchant_service import models as merchant_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401

from services.order_service.main import order_app
from services.payment_service.main import payment_app
from services.payment_service.router import get_notifier

app = FastAPI(title="QR Payment Gateway")


# Sub-app lifecycle hooks do not run when mounted
@app.on_event("startup")
async def startup_event():
    await init_models(engine)


@app.on_event("shutdown")
async def shutdown_event():
    await get_notifier().aclose()


app.mount("/orders", order_app)
app.mount("/payments", payment_app)
