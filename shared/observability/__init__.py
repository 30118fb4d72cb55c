from .setup import setup_observability
from .metrics import (
    qrpay_orders_created_total,
    qrpay_order_create_failures_total,
    qrpay_allocation_attempts,
    qrpay_allocation_collisions_total,
    qrpay_orders_expired_total,
    qrpay_orders_paid_total,
    qrpay_notify_total,
)
