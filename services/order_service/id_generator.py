"""
Order identifier generation.

Format: {yyyymmddHHMMSS}{merchant_id % 10000:04d}{md5(entropy)[:n]}

The hash input mixes the nanosecond clock with merchant and payment type, so
collisions are improbable but not impossible; callers still check the store
before committing.
"""
import hashlib
import time
from datetime import datetime
from typing import Callable, Optional


class IDGenerator:
    """Generates order ids and merchant order ids"""

    @staticmethod
    def _compose(
        prefix: str,
        merchant_id: int,
        entropy: str,
        hash_len: int,
        now: Optional[datetime] = None,
    ) -> str:
        timestamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
        digest = hashlib.md5(entropy.encode()).hexdigest()[:hash_len]
        return f"{prefix}{timestamp}{merchant_id % 10000:04d}{digest}"

    @staticmethod
    def generate_order_id(
        merchant_id: int,
        pay_type: int,
        now: Optional[datetime] = None,
        clock_ns: Callable[[], int] = time.time_ns,
    ) -> str:
        """
        Example: 202610171200310042a1b2c3
        """
        entropy = f"{merchant_id}_{int(pay_type)}_{clock_ns()}"
        return IDGenerator._compose("", merchant_id, entropy, 6, now)

    @staticmethod
    def generate_pay_id(
        merchant_id: int,
        pay_type: int,
        now: Optional[datetime] = None,
        clock_ns: Callable[[], int] = time.time_ns,
    ) -> str:
        """
        Merchant order id for records the gateway creates itself.
        Example: PAY2026101712003100429f8e7d6c
        """
        entropy = f"pay_{merchant_id}_{int(pay_type)}_{clock_ns()}"
        return IDGenerator._compose("PAY", merchant_id, entropy, 8, now)
