# backend/lounge/routers/availability.py
"""
Availability API endpoint.

POST /availability/check - Is one slot free on the given stations
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import ValidationError
from ..schemas.availability import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    StationAvailability,
)
from ..services.slots import check_availability, split_station_refs

router = APIRouter(prefix="/availability", tags=["availability"])

REQUIRED_FIELDS = ["station_id", "booking_date", "start_time", "end_time"]


@router.post("/check", response_model=AvailabilityCheckResponse)
def check_slot_availability(
    data: AvailabilityCheckRequest,
    db: Session = Depends(get_db),
):
    """Per-station availability with one conflict reason each."""
    received = data.model_dump()
    missing = [name for name in REQUIRED_FIELDS if not received.get(name)]
    if missing:
        raise ValidationError(
            "Missing required fields",
            required=REQUIRED_FIELDS,
            missing=missing,
            received=received,
        )

    refs = split_station_refs(data.station_id)
    if not refs:
        raise ValidationError(
            "No valid station IDs or names provided",
            required=REQUIRED_FIELDS,
            received=received,
        )

    try:
        result = check_availability(
            db, refs, data.booking_date, data.start_time, data.end_time,
        )
    except ValidationError as e:
        # Malformed date or time: echo the whole request, keep the bad value
        e.details.update(
            required=REQUIRED_FIELDS,
            invalid=e.details.get("received"),
            received=received,
        )
        raise

    return AvailabilityCheckResponse(
        availability=[StationAvailability(**entry) for entry in result],
        available_count=sum(1 for entry in result if entry["is_available"]),
        total_count=len(result),
    )
