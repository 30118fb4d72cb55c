"""
Tagged error variants raised by the order engine.

Every error carries a stable ``code`` and an HTTP ``status_code``. Routers never
build error bodies themselves: the handlers registered by
``register_exception_handlers`` translate these into ``{"code", "msg"}`` and hide
anything unexpected behind a generic 500.
"""
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class GatewayError(Exception):
    code = "GATEWAY_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "request failed"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "msg": self.message}


# --- Validation ---

class ValidationError(GatewayError):
    code = "VALIDATION_FAILED"
    default_message = "validation failed"


class InvalidSignature(ValidationError):
    code = "INVALID_SIGNATURE"
    default_message = "signature mismatch"


class InvalidPrice(ValidationError):
    code = "INVALID_PRICE"
    default_message = "price must be positive with at most two decimal places"


class InvalidPayType(ValidationError):
    code = "INVALID_PAY_TYPE"
    default_message = "unsupported payment type"


class MissingField(ValidationError):
    code = "MISSING_FIELD"
    default_message = "required field missing"


class UnknownMerchant(ValidationError):
    code = "UNKNOWN_MERCHANT"
    default_message = "invalid merchant id"


# --- Not found ---

class NotFoundError(GatewayError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "not found"


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"
    default_message = "order not found"


class MerchantNotFound(NotFoundError):
    code = "MERCHANT_NOT_FOUND"
    default_message = "merchant not found"


# --- Conflicts ---

class ConflictError(GatewayError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT
    default_message = "conflict"


class OrderExists(ConflictError):
    code = "ORDER_EXISTS"
    default_message = "order id already exists"


class DuplicatePayId(ConflictError):
    code = "DUPLICATE_PAY_ID"
    default_message = "merchant order id already exists, do not resubmit"


# --- Capacity ---

class CapacityExhausted(GatewayError):
    code = "CAPACITY_EXHAUSTED"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "too many pending orders for this amount, retry later"


class MonitorOffline(GatewayError):
    code = "MONITOR_OFFLINE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "payment listener is offline, check the monitor app"


# --- Configuration ---

class ConfigurationError(GatewayError):
    code = "CONFIGURATION_ERROR"
    default_message = "merchant configuration error"


class QRCodeNotConfigured(ConfigurationError):
    code = "QRCODE_NOT_CONFIGURED"


class MerchantKeyMissing(ConfigurationError):
    code = "MERCHANT_KEY_MISSING"
    default_message = "merchant secret key is not configured"


class NotifyURLMissing(ConfigurationError):
    code = "NOTIFY_URL_MISSING"
    default_message = "order has no notify url"


# --- State machine ---

class StateError(GatewayError):
    code = "INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT
    default_message = "invalid order state"


class OrderPaid(StateError):
    code = "ORDER_PAID"
    default_message = "order already paid"


class OrderClosed(StateError):
    code = "ORDER_CLOSED"
    default_message = "order already closed"


class OrderNotPending(StateError):
    code = "ORDER_NOT_PENDING"
    default_message = "only pending orders can be modified"


class OrderUnpaid(StateError):
    code = "ORDER_UNPAID"
    default_message = "order is not paid, cannot build return url"


class ReturnURLMissing(StateError):
    code = "RETURN_URL_MISSING"
    default_message = "order has no return url"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError):
        logger.info(
            "request_rejected",
            path=request.url.path,
            code=exc.code,
            msg=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
        error = MissingField if first.get("type") == "missing" else ValidationError
        return await _gateway_error(request, error(f"{field}: {first.get('msg', 'invalid')}"))

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, error_type=type(exc).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"code": "INTERNAL_ERROR", "msg": "internal server error"},
        )
