# backend/lounge/routers/razorpay.py
"""
Razorpay endpoints: the two booking triggers plus verification.

POST /razorpay/webhook         - Gateway webhook (at-least-once)
POST /razorpay/verify-payment  - Verify a checkout result, no side effects
POST /razorpay/confirm-booking - Browser return: commit from cached checkout
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..errors import PaymentInvalid, SlotNoLongerAvailable, StorageError, ValidationError
from ..schemas.payments import (
    ConfirmBookingRequest,
    ConfirmBookingResponse,
    PaymentReferenceIn,
    VerifyPaymentResponse,
)
from ..services.booking_commit import PaymentReference
from ..services.payments import RazorpayGateway, get_payment_gateway, verify_webhook_signature
from ..services.triggers import handle_payment_return, handle_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/razorpay", tags=["razorpay"])

STAY_ON_PAGE_NOTICE = (
    "Your payment was received but the booking is not saved yet. "
    "Do not close or leave this page; retrying is safe."
)


# ── Webhook ──────────────────────────────────────────────────────────────


@router.post("/webhook")
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None),
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    raw_body = await request.body()
    logger.info(
        f"[WEBHOOK] Received {len(raw_body)} bytes, "
        f"signature={'yes' if x_razorpay_signature else 'no'}"
    )

    if not verify_webhook_signature(raw_body, x_razorpay_signature, settings.razorpay_webhook_secret):
        logger.error("[WEBHOOK] Invalid webhook signature")
        return JSONResponse(status_code=401, content={"ok": False, "error": "Invalid signature"})

    try:
        event = json.loads(raw_body)
    except ValueError:
        return JSONResponse(status_code=400, content={"ok": False, "error": "Invalid request body"})
    if not isinstance(event, dict):
        return JSONResponse(status_code=400, content={"ok": False, "error": "Invalid request body"})

    # StorageError propagates as 503 so the gateway redelivers
    return await run_in_threadpool(handle_webhook_event, db, event, gateway)


# ── Browser return ───────────────────────────────────────────────────────


@router.post("/verify-payment", response_model=VerifyPaymentResponse)
def verify_payment(
    data: PaymentReferenceIn,
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    if not data.razorpay_signature:
        raise ValidationError(
            "Missing required payment parameters",
            required=["razorpay_order_id", "razorpay_payment_id", "razorpay_signature"],
            received=data.model_dump(),
        )

    success = gateway.verify(
        data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature,
    )
    return VerifyPaymentResponse(
        ok=success,
        success=success,
        paymentId=data.razorpay_payment_id,
        orderId=data.razorpay_order_id,
        error=None if success else "Payment not successful",
    )


@router.post("/confirm-booking", response_model=ConfirmBookingResponse)
def confirm_booking(
    data: ConfirmBookingRequest,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    """
    Commit the booking for a payment the browser returned with.

    Success is only ever reported together with booking ids.
    """
    ref = PaymentReference(
        order_id=data.razorpay_order_id,
        payment_id=data.razorpay_payment_id,
        signature=data.razorpay_signature,
    )

    try:
        result = handle_payment_return(db, ref, data.booking_data, gateway)
    except PaymentInvalid as e:
        return JSONResponse(
            status_code=e.status_code,
            content={**e.to_dict(), "success": False, "discard_cached_booking": True},
        )
    except SlotNoLongerAvailable as e:
        return JSONResponse(
            status_code=e.status_code,
            content={**e.to_dict(), "success": False, "contact_support": True},
        )
    except StorageError as e:
        logger.warning(f"[RETURN] payment={ref.payment_id} storage failure, client should retry")
        return _retry_response(e)

    if not result.booking_ids:
        logger.error(f"[RETURN] payment={ref.payment_id} commit returned no booking ids")
        return _retry_response(
            StorageError("Booking could not be confirmed", payment_id=ref.payment_id)
        )

    return ConfirmBookingResponse(
        booking_ids=result.booking_ids,
        customer_id=result.customer_id,
        already_committed=result.already_committed,
        payment_id=ref.payment_id,
        order_id=ref.order_id,
    )


def _retry_response(e: StorageError) -> JSONResponse:
    return JSONResponse(
        status_code=e.status_code,
        content={**e.to_dict(), "success": False, "notice": STAY_ON_PAGE_NOTICE},
    )
