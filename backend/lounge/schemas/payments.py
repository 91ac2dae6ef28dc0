# backend/lounge/schemas/payments.py
"""
Pydantic schemas for the payment endpoints.

Field names follow the gateway checkout handler (razorpay_*), with the
camelCase spellings the browser sends accepted as aliases.
"""

from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, Field


class PaymentReferenceIn(BaseModel):
    razorpay_order_id: str = Field(
        validation_alias=AliasChoices("razorpay_order_id", "orderId", "order_id"),
    )
    razorpay_payment_id: str = Field(
        validation_alias=AliasChoices("razorpay_payment_id", "paymentId", "payment_id"),
    )
    razorpay_signature: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("razorpay_signature", "signature"),
    )


class VerifyPaymentResponse(BaseModel):
    ok: bool
    success: bool
    paymentId: str
    orderId: str
    error: Optional[str] = None


class ConfirmBookingRequest(PaymentReferenceIn):
    """Payment reference plus the browser's cached checkout request."""
    booking_data: Optional[Any] = Field(
        None,
        validation_alias=AliasChoices("booking_data", "bookingData", "pendingBooking"),
    )


class ConfirmBookingResponse(BaseModel):
    ok: bool = True
    success: bool = True
    booking_ids: list[str]
    customer_id: Optional[str] = None
    already_committed: bool = False
    payment_id: str
    order_id: str
