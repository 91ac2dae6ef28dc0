# backend/lounge/routers/bookings.py
# Online bookings come from the payment flow; POST creates pay-at-venue
# bookings. PATCH = 405, DELETE = 405

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NotFound, storage_errors
from ..models.generated import Bookings as DBBookings
from ..schemas.bookings import BookingRead, VenueBookingCreate, VenueBookingResponse
from ..services.venue_bookings import create_venue_booking

router = APIRouter(prefix="/bookings", tags=["bookings"])

REQUIRED_FIELDS = ["station_id", "booking_date", "start_time", "end_time", "customer.phone"]


@router.post("/", response_model=VenueBookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: VenueBookingCreate,
    db: Session = Depends(get_db),
):
    result = create_venue_booking(
        db,
        data.station_id,
        data.booking_date,
        data.start_time,
        data.end_time,
        name=data.customer.name,
        phone=data.customer.phone,
        email=data.customer.email,
        customer_id=data.customer.id,
        original_price=data.original_price,
        final_price=data.final_price,
        coupon_code=data.coupon_code,
        notes=data.notes,
    )
    return VenueBookingResponse(booking_ids=result.booking_ids, customer_id=result.customer_id)


@router.get("/", response_model=list[BookingRead])
def list_bookings(
    payment_txn_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    with storage_errors("Booking list"):
        query = db.query(DBBookings)
        if payment_txn_id:
            query = query.filter(DBBookings.payment_txn_id == payment_txn_id)
        return query.order_by(DBBookings.booking_date, DBBookings.start_time).all()


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: str, db: Session = Depends(get_db)):
    with storage_errors("Booking lookup"):
        obj = db.get(DBBookings, id)
    if not obj:
        raise NotFound("Booking not found", booking_id=id)
    return obj


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
