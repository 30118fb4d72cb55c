from prometheus_client import Counter, Histogram

# Business Metrics
qrpay_orders_created_total = Counter(
    "qrpay_orders_created_total",
    "Orders created",
    ["pay_type", "is_auto"]
)

qrpay_order_create_failures_total = Counter(
    "qrpay_order_create_failures_total",
    "Order creations rejected",
    ["code"] # Stable error code, e.g. 'INVALID_SIGNATURE'
)

qrpay_allocation_attempts = Histogram(
    "qrpay_allocation_attempts",
    "Reservation attempts needed to allocate an amount",
    buckets=(1, 2, 3, 4, 5, 6, 7, 8, 9, 10)
)

qrpay_allocation_collisions_total = Counter(
    "qrpay_allocation_collisions_total",
    "Reservation attempts lost to another pending order",
    ["policy"] # Labels: 'none', 'increment', 'decrement'
)

qrpay_orders_expired_total = Counter(
    "qrpay_orders_expired_total",
    "Pending orders closed because their window elapsed",
    ["trigger"] # Labels: 'read', 'sweep'
)

qrpay_orders_paid_total = Counter(
    "qrpay_orders_paid_total",
    "Payment confirmations applied",
    ["matched"] # Labels: 'true', 'false' (unmatched transfer), 'manual' (settled on reissue)
)

qrpay_notify_total = Counter(
    "qrpay_notify_total",
    "Merchant webhook outcomes",
    ["result"] # Labels: 'success', 'legacy_success', 'failed', 'skipped'
)
