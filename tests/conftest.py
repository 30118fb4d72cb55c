"""
Pytest configuration and fixtures.

Environment is pinned before any application module is imported: no tracing
exporter, no /metrics route, no rate limiting, and a throwaway SQLite URL for
the module-level engine (tests always bind their own engine).
"""
import os

os.environ["OTEL_ENABLED"] = "false"
os.environ["METRICS_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["FRONTEND_URL"] = "https://pay.example.com"

from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from services.merchant_service.models import Merchant, StaticQRCode
from services.merchant_service.repository import MerchantRepository
from services.order_service import models as order_models  # noqa: F401
from services.order_service.schemas import OrderCreate
from shared.config.database import build_engine, build_session_factory, init_models
from shared.security.signature import sign

APP_ID = "demo-shop"
SECRET = "secret123"
INTERNAL_KEY = "test-internal-key"
T0 = 1_760_000_000


class FakeClock:
    """Unix-seconds clock the tests move by hand."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so several sessions can race on one store."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'qrpay.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, Any]:
    async with session_factory() as session:
        yield session


async def create_merchant(db: AsyncSession, app_id: str = APP_ID, **overrides) -> Merchant:
    values = dict(
        app_id=app_id,
        secret_key=SECRET,
        notify_url="https://shop.example.com/notify",
        return_url="https://shop.example.com/return",
        close_minutes=5,
        pay_qf=1,
        wxpay_url="wxp://general-wechat",
        zfbpay_url="https://qr.alipay.com/general",
        monitor_state=1,
        last_heart=T0,
    )
    values.update(overrides)
    return await MerchantRepository.create(db, Merchant(**values))


@pytest_asyncio.fixture
async def merchant(db) -> Merchant:
    """Increment policy, 5 minute window, one static WeChat code for 10.00."""
    merchant = await create_merchant(db)
    await MerchantRepository.add_static_qrcode(
        db,
        StaticQRCode(
            merchant_id=merchant.id,
            pay_type=1,
            price=Decimal("10.00"),
            pay_url="wxp://static-10",
        ),
    )
    return merchant


def signed_request(
    pay_id: str,
    price="10.00",
    pay_type: int = 1,
    param: str = "",
    app_id: str = APP_ID,
    secret: str = SECRET,
    **extra,
) -> OrderCreate:
    fields = {"payId": pay_id, "param": param, "type": pay_type, "price": price}
    payload = {
        "appId": app_id,
        **fields,
        "sign": sign(fields, secret),
        **extra,
    }
    return OrderCreate.model_validate(payload)


@pytest.fixture
def make_request():
    return signed_request
