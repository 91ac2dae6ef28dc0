# backend/lounge/services/triggers.py
"""
The two entry points that commit a paid booking.

- Webhook: the gateway delivers payment.captured / order.paid at least
  once, with the booking payload in the order notes
- Payment return: the browser comes back from checkout with the payment
  reference and its cached copy of the checkout request

Neither knows about the other. Both call commit_booking with the same
payment reference; the committer makes the outcome single.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..errors import LoungeError, PaymentInvalid, SlotNoLongerAvailable, StorageError, ValidationError
from .booking_commit import (
    CommitResult,
    PaymentReference,
    commit_booking,
    find_committed_booking_ids,
)
from .events import emit_event
from .payload import decode_booking_payload, unwrap_notes
from .payments import RazorpayGateway, WebhookPaymentVerifier

logger = logging.getLogger(__name__)

COMMIT_EVENTS = ("payment.captured", "order.paid")


def _entity(payload: dict, name: str) -> dict:
    """payload.<name>.entity, or payload.<name> when not wrapped."""
    value = payload.get(name) or {}
    if not isinstance(value, dict):
        return {}
    entity = value.get("entity", value)
    return entity if isinstance(entity, dict) else {}


def _notes_payload(order: dict, payment: dict) -> Any:
    """First booking payload found in order notes, then payment notes."""
    for notes in (order.get("notes"), payment.get("notes")):
        if not notes:
            continue
        raw = unwrap_notes(notes)
        if raw is not None:
            return raw
    return None


# ── Webhook ──────────────────────────────────────────────────────────────


def handle_webhook_event(db: Session, event: dict, gateway: RazorpayGateway) -> dict:
    """
    Process one authenticated webhook event.

    Terminal outcomes are returned as a body with ok=false so the caller
    can acknowledge them; StorageError propagates so the gateway retries.
    """
    event_type = event.get("event")
    body = event.get("payload") or {}
    payment = _entity(body, "payment")
    order = _entity(body, "order")

    payment_id = payment.get("id")
    order_id = payment.get("order_id") or order.get("id")

    logger.info(
        f"[WEBHOOK] event={event_type} payment={payment_id} "
        f"order={order_id} status={payment.get('status')}"
    )

    if event_type == "payment.failed":
        logger.info(f"[WEBHOOK] Payment failed: {payment_id}")
        return {"ok": True, "received": True, "event": event_type}

    if event_type not in COMMIT_EVENTS:
        logger.info(f"[WEBHOOK] Unhandled event: {event_type}")
        return {"ok": True, "received": True, "event": event_type}

    if not (payment_id and order_id):
        logger.warning(f"[WEBHOOK] {event_type} without payment/order id, ignoring")
        return {"ok": False, "received": True, "error": "Missing payment or order id"}

    raw = _notes_payload(order, payment)
    if raw is None:
        # Notes are not always part of the event; the order always has them
        fetched = gateway.fetch_order(order_id) or {}
        raw = _notes_payload(fetched, {})

    if raw is None:
        logger.error(f"[WEBHOOK] payment={payment_id} order={order_id} has no booking data")
        emit_event("payment_unreconciled", {
            "payment_id": payment_id,
            "order_id": order_id,
            "reason": "No booking data available",
            "source": "webhook",
        })
        return {"ok": False, "received": True, "error": "No booking data available"}

    ref = PaymentReference(order_id=order_id, payment_id=payment_id)
    verifier = WebhookPaymentVerifier(payment)
    try:
        payload = decode_booking_payload(raw)
        result = commit_booking(db, ref, payload, verifier, source="webhook")
    except StorageError:
        raise
    except LoungeError as e:
        logger.error(f"[WEBHOOK] payment={payment_id} not committed: {e.message}")
        # SlotNoLongerAvailable was already escalated by the committer
        if (
            not isinstance(e, (PaymentInvalid, SlotNoLongerAvailable))
            and verifier.verify(order_id, payment_id, None)
            and not find_committed_booking_ids(db, payment_id)
        ):
            emit_event("payment_unreconciled", {
                "payment_id": payment_id,
                "order_id": order_id,
                "reason": e.message,
                "source": "webhook",
            })
        return {"received": True, **e.to_dict()}

    return {
        "ok": True,
        "received": True,
        "booking_ids": result.booking_ids,
        "already_committed": result.already_committed,
    }


# ── Browser return ───────────────────────────────────────────────────────


def handle_payment_return(
    db: Session,
    ref: PaymentReference,
    cached_payload: Optional[Any],
    gateway: RazorpayGateway,
) -> CommitResult:
    """
    Commit from the browser's cached checkout request.

    Errors propagate; the router turns them into the client instructions
    (discard the cache, contact support, retry without leaving).
    """
    if not cached_payload:
        raise ValidationError(
            "Booking data not found. Please contact support with your payment id.",
            required=["booking_data"],
            payment_id=ref.payment_id,
        )

    try:
        payload = decode_booking_payload(cached_payload)
    except LoungeError:
        logger.error(f"[RETURN] payment={ref.payment_id} cached booking data is unreadable")
        raise

    return commit_booking(db, ref, payload, gateway, source="payment_return")
