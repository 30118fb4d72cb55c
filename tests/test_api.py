"""
HTTP surface through the mounted cluster app.
"""
import httpx
import pytest
import pytest_asyncio

from starlette.requests import Request

from main import app, shutdown_event
from services.order_service.main import order_app
from services.payment_service.main import payment_app
from services.payment_service.notifier import MerchantNotifier
from services.payment_service.router import get_notifier
from shared.config.database import get_db
from shared.security.rate_limiter import merchant_or_ip
from shared.security.signature import SignatureForm, sign

from conftest import APP_ID, INTERNAL_KEY, SECRET

CREATE_KEYS = {"payId", "orderId", "payType", "price", "reallyPrice", "payUrl", "isAuto", "redirectUrl"}


def creation_body(pay_id, price="10.00", pay_type=1, param="", **extra):
    fields = {"payId": pay_id, "param": param, "type": pay_type, "price": price}
    return {"appId": APP_ID, **fields, "sign": sign(fields, SECRET), **extra}


@pytest.fixture
def webhook_calls():
    return []


@pytest_asyncio.fixture
async def client(session_factory, merchant, webhook_calls):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    def handler(request: httpx.Request) -> httpx.Response:
        webhook_calls.append(request)
        return httpx.Response(200, text="success")

    notifier = MerchantNotifier(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    order_app.dependency_overrides[get_db] = override_get_db
    payment_app.dependency_overrides[get_db] = override_get_db
    payment_app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    order_app.dependency_overrides.clear()
    payment_app.dependency_overrides.clear()
    await notifier.aclose()


async def create(client, pay_id, **kwargs) -> dict:
    response = await client.post("/orders/", json=creation_body(pay_id, **kwargs))
    assert response.status_code == 200, response.text
    return response.json()


class TestCreation:

    async def test_json_response(self, client):
        body = await create(client, "A-1")
        assert set(body) == CREATE_KEYS
        assert body["payId"] == "A-1"
        assert body["price"] == 10.0
        assert body["reallyPrice"] == 10.0
        assert body["isAuto"] == 0
        assert body["redirectUrl"] == f"https://pay.example.com/#/payment/{body['orderId']}"

    async def test_html_redirect_page(self, client):
        response = await client.post("/orders/", json=creation_body("A-1", isHtml=1))
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "https://pay.example.com/#/payment/" in response.text
        assert "window.location.href" in response.text

    async def test_bad_signature(self, client):
        body = creation_body("A-1")
        body["sign"] = "0" * 32
        response = await client.post("/orders/", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_SIGNATURE"

    async def test_missing_field(self, client):
        body = creation_body("A-1")
        del body["sign"]
        response = await client.post("/orders/", json=body)
        assert response.status_code == 400
        assert response.json() == {"code": "MISSING_FIELD", "msg": "sign: Field required"}

    async def test_duplicate_pay_id_conflicts(self, client):
        await create(client, "A-1")
        response = await client.post("/orders/", json=creation_body("A-1"))
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_PAY_ID"


class TestReads:

    async def test_detail(self, client):
        created = await create(client, "A-1", subject="Mug")
        response = await client.get(f"/orders/{created['orderId']}")
        assert response.status_code == 200
        detail = response.json()
        assert detail["state"] == 0
        assert detail["stateText"] == "pending"
        assert detail["timeOut"] == 5
        assert 0 < detail["remainingSeconds"] <= 300
        assert detail["subject"] == "Mug"

    async def test_status_while_pending(self, client):
        created = await create(client, "A-1", param="cart")
        response = await client.get(f"/orders/{created['orderId']}/status")
        body = response.json()
        assert set(body) == {"state", "remainingSeconds", "return_url", "param"}
        assert body["state"] == 0
        assert body["param"] == "cart"

    async def test_return_url_requires_payment(self, client):
        created = await create(client, "A-1")
        response = await client.get(f"/orders/{created['orderId']}/return-url")
        assert response.status_code == 409
        assert response.json()["code"] == "ORDER_UNPAID"

    async def test_unknown_order(self, client):
        response = await client.get("/orders/nope")
        assert response.status_code == 404
        assert response.json() == {"code": "ORDER_NOT_FOUND", "msg": "order not found"}


class TestManagement:

    async def test_requires_internal_key(self, client):
        created = await create(client, "A-1")
        response = await client.post(f"/orders/{created['orderId']}/close")
        assert response.status_code == 403

    async def test_close_then_delete(self, client):
        created = await create(client, "A-1")
        headers = {"X-Internal-API-Key": INTERNAL_KEY}

        response = await client.post(f"/orders/{created['orderId']}/close", headers=headers)
        assert response.status_code == 200
        assert response.json()["state"] == -1

        response = await client.post(f"/orders/{created['orderId']}/close", headers=headers)
        assert response.status_code == 409
        assert response.json()["code"] == "ORDER_CLOSED"

        response = await client.delete(f"/orders/{created['orderId']}", headers=headers)
        assert response.status_code == 204

    async def test_update(self, client):
        created = await create(client, "A-1")
        response = await client.patch(
            f"/orders/{created['orderId']}",
            json={"subject": "Updated", "returnUrl": "https://shop.example.com/done"},
            headers={"X-Internal-API-Key": INTERNAL_KEY},
        )
        assert response.status_code == 200
        assert response.json()["subject"] == "Updated"
        assert response.json()["return_url"] == "https://shop.example.com/done"

    async def test_maintenance(self, client):
        headers = {"X-Internal-API-Key": INTERNAL_KEY}
        response = await client.post("/orders/maintenance/close-expired", json={}, headers=headers)
        assert response.json() == {"count": 0}
        response = await client.post("/orders/maintenance/purge", json={"onlyClosed": True}, headers=headers)
        assert response.json() == {"count": 0}


class TestPush:

    async def test_push_pays_order_and_status_redirects(self, client, webhook_calls):
        created = await create(client, "A-1")
        fields = {"type": 1, "price": "10.00", "t": "1760000000"}
        response = await client.post(
            "/payments/push",
            json={"appId": APP_ID, **fields, "sign": sign(fields, SECRET, SignatureForm.PUSH)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["orderId"] == created["orderId"]
        assert body["matched"] is True
        assert body["state"] == 1
        assert body["notify"] == "success"
        assert len(webhook_calls) == 1

        status = (await client.get(f"/orders/{created['orderId']}/status")).json()
        assert set(status) == {"redirectUrl", "remainingSeconds", "return_url", "param"}
        assert status["redirectUrl"].startswith("https://shop.example.com/return?payId=A-1&")

        url = (await client.get(f"/orders/{created['orderId']}/return-url")).json()
        assert url["returnUrl"] == status["redirectUrl"]

    async def test_heartbeat(self, client):
        fields = {"t": "1760000000"}
        response = await client.post(
            "/payments/heartbeat",
            json={"appId": APP_ID, **fields, "sign": sign(fields, SECRET, SignatureForm.HEARTBEAT)},
        )
        assert response.status_code == 200
        body = response.json()
        assert (body["appId"], body["online"]) == (APP_ID, True)
        assert isinstance(body["lastHeart"], int)

        response = await client.post("/payments/heartbeat", json={"appId": APP_ID, **fields, "sign": "bad"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_SIGNATURE"

    async def test_reissue_requires_internal_key(self, client, webhook_calls):
        created = await create(client, "A-1")
        response = await client.post(f"/payments/orders/{created['orderId']}/reissue")
        assert response.status_code == 403
        assert webhook_calls == []

    async def test_reissue_settles_pending_order(self, client, webhook_calls):
        created = await create(client, "A-1")
        response = await client.post(
            f"/payments/orders/{created['orderId']}/reissue",
            headers={"X-Internal-API-Key": INTERNAL_KEY},
        )
        assert response.status_code == 200
        assert response.json() == {"orderId": created["orderId"], "payId": "A-1", "state": 1, "notify": "success"}
        assert len(webhook_calls) == 1

    async def test_health(self, client):
        assert (await client.get("/orders/health")).json()["status"] == "running"
        assert (await client.get("/payments/health")).json()["service"] == "payment"


async def test_shutdown_closes_webhook_client():
    notifier = get_notifier()
    notifier._get_client()

    await shutdown_event()

    assert notifier._client is None


def _request(headers=()) -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/orders/",
            "query_string": b"",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers],
            "client": ("10.0.0.7", 52100),
        }
    )


class TestRateLimitKey:

    def test_keyed_by_app_id_header(self):
        assert merchant_or_ip(_request([("X-App-Id", APP_ID)])) == f"merchant:{APP_ID}"

    def test_falls_back_to_client_ip(self):
        assert merchant_or_ip(_request()) == "ip:10.0.0.7"
