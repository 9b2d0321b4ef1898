import asyncio
import hashlib
import hmac
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import razorpay
from razorpay.errors import BadRequestError, ServerError
from razorpay.errors import GatewayError as RazorpayGatewayError
import requests

from course_payments.errors import GatewayError
from course_payments.models import Order, Payment

logger = logging.getLogger("course_payments.razorpay")

CHECKOUT_URL = "https://api.razorpay.com/v1/checkout/embedded"

_SDK_ERRORS = (
    BadRequestError,
    RazorpayGatewayError,
    ServerError,
    requests.RequestException,
)


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    return _hmac_hex(secret, f"{order_id}|{payment_id}".encode())


def _matches(expected: str, signature) -> bool:
    # Exact match only; compared as bytes so non-ASCII input is a mismatch, not an error
    if not isinstance(signature, str):
        return False
    return hmac.compare_digest(expected.encode(), signature.encode("utf-8", "surrogateescape"))


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    return _matches(payment_signature(order_id, payment_id, secret), signature)


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    return _matches(_hmac_hex(secret, body), signature)


def new_receipt() -> str:
    return f"rcpt_{int(time.time() * 1000)}"


class RazorpayGateway:
    """Single-attempt calls to the Razorpay orders and payments APIs."""

    def __init__(self, key_id: str, key_secret: str, client: razorpay.Client = None):
        self.key_id = key_id
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    async def _call(self, fn, *args, action: str):
        try:
            return await asyncio.get_event_loop().run_in_executor(None, fn, *args)
        except _SDK_ERRORS as e:
            logger.error(f"Razorpay call failed while {action}: {e}")
            raise GatewayError(f"Razorpay call failed while {action}: {e}") from e

    async def create_order(
        self, amount: int, currency: str, receipt: str, notes: Dict[str, Any]
    ) -> Order:
        data = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes}
        raw = await self._call(self.client.order.create, data, action="creating an order")
        order = Order.model_validate(raw)
        logger.info(f"Created order {order.id} for {order.amount} {order.currency}")
        return order

    async def fetch_payment(self, payment_id: str) -> Payment:
        raw = await self._call(self.client.payment.fetch, payment_id, action=f"fetching payment {payment_id}")
        return Payment.model_validate(raw)

    def checkout_link(self, order_id: str, callback_url: str, cancel_url: str) -> str:
        query = urlencode({
            "order_id": order_id,
            "key_id": self.key_id,
            "callback_url": callback_url,
            "cancel_url": cancel_url,
        })
        return f"{CHECKOUT_URL}?{query}"
