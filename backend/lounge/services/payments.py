# backend/lounge/services/payments.py
"""
Payment gateway (Razorpay) client.

Contains:
- verify_webhook_signature(): signature over the raw webhook body
- RazorpayGateway: checkout signature, payment status and order lookups
  through the Razorpay SDK
- WebhookPaymentVerifier: verification for payments delivered by a
  webhook whose body signature was already checked

Any failure to verify means "not paid".
"""

import logging
from typing import Optional, Protocol

import razorpay
import requests

from ..config import settings

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = ("captured", "authorized")

# SDK call failures: API error answers, transport errors, unreadable JSON
GATEWAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.RequestException,
    ValueError,
)


class PaymentVerifier(Protocol):
    def verify(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        ...


def verify_webhook_signature(
    raw_body: bytes,
    signature: Optional[str],
    secret: str,
) -> bool:
    """Webhook signature: HMAC-SHA256(secret, raw body)."""
    if not (raw_body and signature and secret):
        return False
    try:
        body = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        return False
    try:
        razorpay.Client().utility.verify_webhook_signature(body, signature, secret)
    except razorpay.errors.SignatureVerificationError:
        return False
    return True


class RazorpayGateway:
    """Verification and lookups against the Razorpay API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        timeout: float = 10.0,
        client: Optional[razorpay.Client] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.timeout = timeout
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def verify_signature(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        """Checkout signature: HMAC-SHA256(key_secret, "order_id|payment_id")."""
        if not (order_id and payment_id and signature and self.key_secret):
            return False
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
        except razorpay.errors.SignatureVerificationError:
            return False
        return True

    def fetch_payment(self, payment_id: str) -> Optional[dict]:
        try:
            return self.client.payment.fetch(payment_id, timeout=self.timeout)
        except GATEWAY_ERRORS as e:
            logger.error(f"[PAYMENT] Razorpay payment fetch {payment_id} failed: {e}")
            return None

    def fetch_order(self, order_id: str) -> Optional[dict]:
        """Order with its notes, or None if it cannot be fetched."""
        try:
            return self.client.order.fetch(order_id, timeout=self.timeout)
        except GATEWAY_ERRORS as e:
            logger.error(f"[PAYMENT] Razorpay order fetch {order_id} failed: {e}")
            return None

    def verify(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        """
        Signature matches AND the gateway reports the payment as paid.
        """
        if not self.verify_signature(order_id, payment_id, signature):
            logger.warning(f"[PAYMENT] Signature mismatch for payment={payment_id}")
            return False

        payment = self.fetch_payment(payment_id)
        if not payment:
            return False

        if payment.get("order_id") and payment["order_id"] != order_id:
            logger.warning(
                f"[PAYMENT] payment={payment_id} belongs to order={payment['order_id']}, "
                f"not {order_id}"
            )
            return False

        status = payment.get("status")
        if status not in SUCCESS_STATUSES:
            logger.info(f"[PAYMENT] payment={payment_id} not successful: {status}")
            return False

        return True


class WebhookPaymentVerifier:
    """
    Verifies the payment entity carried by an authenticated webhook.

    The webhook body signature already proves the gateway sent it; this
    only checks that the committed payment is the one in the event and
    that it was paid.
    """

    def __init__(self, payment: Optional[dict]):
        self.payment = payment or {}

    def verify(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        if not payment_id or self.payment.get("id") != payment_id:
            return False
        if self.payment.get("order_id") and self.payment["order_id"] != order_id:
            return False
        return self.payment.get("status") in SUCCESS_STATUSES


def get_payment_gateway() -> RazorpayGateway:
    """Dependency for FastAPI."""
    return RazorpayGateway(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        timeout=settings.payment_timeout_seconds,
    )
