# backend/lounge/schemas/bookings.py

from typing import Optional
from pydantic import BaseModel, Field


class BookingRead(BaseModel):
    id: str

    station_id: str
    customer_id: str

    booking_date: str
    start_time: str
    end_time: str
    duration: int

    status: str
    original_price: Optional[float] = None
    discount_percentage: Optional[float] = None
    final_price: Optional[float] = None
    coupon_code: Optional[str] = None

    payment_mode: Optional[str] = None
    payment_txn_id: Optional[str] = None
    notes: Optional[str] = None

    created_at: Optional[str] = None

    model_config = {"from_attributes": True}


# ============================================================
# PAY AT VENUE
# ============================================================

class VenueCustomer(BaseModel):
    id: Optional[str] = None
    name: str = ""
    phone: str
    email: Optional[str] = None


class VenueBookingCreate(BaseModel):
    station_id: str | list[str]
    booking_date: str = Field(description="YYYY-MM-DD")
    start_time: str = Field(description="HH:MM")
    end_time: str = Field(description="HH:MM; 00:00 = midnight")
    customer: VenueCustomer

    # Totals for the whole booking; station hourly rates when omitted
    original_price: Optional[float] = Field(None, ge=0)
    final_price: Optional[float] = Field(None, ge=0)
    coupon_code: Optional[str] = None
    notes: Optional[str] = None


class VenueBookingResponse(BaseModel):
    ok: bool = True
    booking_ids: list[str]
    customer_id: str
