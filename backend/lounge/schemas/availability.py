# backend/lounge/schemas/availability.py
"""
Pydantic schemas for the availability check.
"""

from pydantic import BaseModel, Field


class AvailabilityCheckRequest(BaseModel):
    """
    Request for one slot on one or more stations.

    Every field is optional at parse time so missing ones can be answered
    with a `required` / `received` echo. Type errors get the same echo
    from the request validation handler in main.py.
    """
    station_id: str | list[str] | None = Field(
        None, description="Station id or name, a list, or a comma-separated string"
    )
    booking_date: str | None = Field(None, description="YYYY-MM-DD")
    start_time: str | None = Field(None, description="HH:MM (24-hour)")
    end_time: str | None = Field(None, description="HH:MM (24-hour); 00:00 = midnight")


class StationAvailability(BaseModel):
    station_id: str
    station_name: str
    station_type: str
    hourly_rate: float
    is_available: bool
    conflict_reason: str | None = None


class AvailabilityCheckResponse(BaseModel):
    ok: bool = True
    availability: list[StationAvailability]
    available_count: int
    total_count: int
