# backend/lounge/services/venue_bookings.py
"""
Pay-at-venue bookings.

Created by staff or the phone agent for slots paid on arrival. There is
no payment reference, so nothing is deduplicated: each call creates its
own rows. The slot is checked against bookings, live holds and sessions
right before the insert; any conflict rejects the whole request.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import SlotUnavailable, StorageError
from ..models.generated import Bookings as DBBookings
from .customers import resolve_customer
from .events import emit_event
from .slots.availability import StationRefs, check_availability
from .slots.config import BookingConfig, get_booking_config
from .slots.intervals import parse_slot

logger = logging.getLogger(__name__)


@dataclass
class VenueBookingResult:
    booking_ids: list[str]
    customer_id: str


def create_venue_booking(
    db: Session,
    station_refs: StationRefs,
    booking_date: str,
    start_time: str,
    end_time: str,
    name: str,
    phone: str,
    email: Optional[str] = None,
    customer_id: Optional[str] = None,
    original_price: Optional[float] = None,
    final_price: Optional[float] = None,
    coupon_code: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[BookingConfig] = None,
) -> VenueBookingResult:
    """
    Book one slot on one or more stations, payment due at the venue.

    Without prices, each row is charged its station's hourly rate for the
    slot's duration. Given prices are totals and are split over the rows.

    Raises:
        ValidationError / MalformedTime: bad date or times
        StationNotFound: unresolved station references
        SlotUnavailable: any station conflicts; nothing is written
        StorageError: insert failed
    """
    config = config or get_booking_config()
    now = now or datetime.now()
    slot = parse_slot(start_time, end_time)
    duration = slot.end_minute - slot.start_minute

    # Step 1: Availability, including holds of online checkouts
    availability = check_availability(
        db, station_refs, booking_date, start_time, end_time, now=now, config=config,
    )
    conflicts = [
        {
            "station_id": entry["station_id"],
            "station_name": entry["station_name"],
            "conflict_reason": entry["conflict_reason"],
        }
        for entry in availability
        if not entry["is_available"]
    ]
    if conflicts:
        logger.info(f"[VENUE] date={booking_date} slot={slot} rejected: {conflicts}")
        raise SlotUnavailable(
            "Selected slot is not available",
            booking_date=booking_date,
            start_time=start_time,
            end_time=end_time,
            conflicts=conflicts,
        )

    # Step 2: Customer
    customer = resolve_customer(
        db, name=name, phone=phone, email=email, customer_id=customer_id, now=now, config=config,
    )

    # Step 3: Prices per row
    rows_count = len(availability)
    if final_price is None:
        prices = [
            (entry["hourly_rate"] * duration / 60, entry["hourly_rate"] * duration / 60)
            for entry in availability
        ]
        discount_percentage = None
    else:
        original = original_price if original_price is not None else final_price
        prices = [(original / rows_count, final_price / rows_count)] * rows_count
        discount_percentage = (
            (original - final_price) / original * 100
            if original > 0 and final_price < original else None
        )

    rows = [
        DBBookings(
            station_id=entry["station_id"],
            customer_id=customer.id,
            booking_date=booking_date,
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            status="confirmed",
            original_price=row_original,
            discount_percentage=discount_percentage,
            final_price=row_final,
            coupon_code=coupon_code or None,
            payment_mode=config.venue_payment_mode,
            payment_txn_id=None,
            notes=notes or None,
        )
        for entry, (row_original, row_final) in zip(availability, prices)
    ]

    # Step 4: Insert
    try:
        db.add_all(rows)
        db.flush()
        booking_ids = sorted(row.id for row in rows)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Venue booking insert failed") from e

    logger.info(
        f"[VENUE] Created {len(booking_ids)} booking(s) date={booking_date} slot={slot} "
        f"customer_id={customer.id}"
    )
    emit_event("booking_created", {
        "booking_ids": booking_ids,
        "payment_id": None,
        "customer_id": customer.id,
        "payment_mode": config.venue_payment_mode,
        "source": "venue",
    })

    return VenueBookingResult(booking_ids=booking_ids, customer_id=customer.id)
