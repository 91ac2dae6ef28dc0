# backend/lounge/services/slots/__init__.py
"""
Slot reservation module.

Intervals: "HH:MM" arithmetic and the overlap test
Availability: per-station conflicts for one requested slot
Blocks: short-lived checkout holds
"""

from .config import BookingConfig, get_booking_config
from .intervals import (
    Slot,
    normalized_end,
    overlaps,
    parse_date,
    parse_slot,
    time_str_to_minutes,
)
from .availability import check_availability, resolve_stations, split_station_refs
from .blocks import confirm_blocks, create_block, create_blocks, get_block, purge_expired_blocks

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "Slot",
    "normalized_end",
    "overlaps",
    "parse_date",
    "parse_slot",
    "time_str_to_minutes",
    "check_availability",
    "resolve_stations",
    "split_station_refs",
    "confirm_blocks",
    "create_block",
    "create_blocks",
    "get_block",
    "purge_expired_blocks",
]
