# backend/lounge/services/slots/availability.py
"""
Station availability for one requested slot.

A station is unavailable when any of three independent sources conflicts
with the requested interval:
- Bookings with status confirmed / in-progress that overlap it
- Unexpired, unconfirmed slot blocks for exactly the same slot
- Live sessions (today only) that started inside it

One reason is reported per station, in that precedence order.
"""

import logging
import re
from datetime import datetime
from typing import Iterable, Optional, Union

from sqlalchemy.orm import Session

from ...errors import StationNotFound, ValidationError, storage_errors
from ...models.generated import (
    Bookings as DBBookings,
    Sessions as DBSessions,
    SlotBlocks as DBSlotBlocks,
    Stations as DBStations,
)
from .config import BookingConfig, get_booking_config
from .intervals import Slot, parse_date, parse_slot

logger = logging.getLogger(__name__)

REASON_BOOKED = "Already booked for this time slot"
REASON_BLOCKED = "Currently being booked by another customer"
REASON_IN_USE = "Currently in use"

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

StationRefs = Union[str, Iterable[str]]


# ── Station references ───────────────────────────────────────────────────


def split_station_refs(station_id: StationRefs) -> list[str]:
    """
    Accept a single id/name, a list, or a comma-separated string.

    Returns de-duplicated, stripped references in input order.
    """
    if station_id is None:
        return []
    if isinstance(station_id, str):
        parts = station_id.split(",") if "," in station_id else [station_id]
    else:
        parts = [str(s) for s in station_id]

    refs: list[str] = []
    for part in parts:
        ref = part.strip()
        if ref and ref not in refs:
            refs.append(ref)
    return refs


def resolve_stations(db: Session, refs: Iterable[str]) -> list[DBStations]:
    """
    Resolve station ids or names against the catalog.

    Names match case-insensitively: exact match first, then substring in
    either direction. Anything unresolved raises StationNotFound carrying
    the full catalog.
    """
    refs = list(refs)
    if not refs:
        raise ValidationError("No valid station IDs or names provided", received=refs)

    with storage_errors("Station lookup"):
        catalog = (
            db.query(DBStations)
            .filter(DBStations.is_active == 1)
            .order_by(DBStations.name)
            .all()
        )

    by_id = {s.id: s for s in catalog}
    resolved: list[DBStations] = []
    unmatched: list[str] = []

    for ref in refs:
        station = by_id.get(ref) if UUID_RE.match(ref) else None
        if station is None:
            station = _match_by_name(catalog, ref)

        if station is None:
            unmatched.append(ref)
            logger.warning(f"[AVAIL] Could not find station matching {ref!r}")
        elif station not in resolved:
            resolved.append(station)

    if unmatched:
        raise StationNotFound(
            unmatched,
            [{"id": s.id, "name": s.name} for s in catalog],
        )

    return resolved


def _match_by_name(catalog: list[DBStations], name: str) -> Optional[DBStations]:
    needle = name.lower()
    for station in catalog:
        if station.name.lower() == needle:
            return station
    for station in catalog:
        hay = station.name.lower()
        if needle in hay or hay in needle:
            return station
    return None


# ── Availability ─────────────────────────────────────────────────────────


def check_availability(
    db: Session,
    station_refs: StationRefs,
    booking_date: str,
    start_time: str,
    end_time: str,
    now: Optional[datetime] = None,
    config: Optional[BookingConfig] = None,
    *,
    include_blocks: bool = True,
    exclude_payment_txn_id: Optional[str] = None,
) -> list[dict]:
    """
    Check one slot on a set of stations.

    Args:
        station_refs: Station ids and/or names (see split_station_refs)
        booking_date: "YYYY-MM-DD"
        start_time / end_time: "HH:MM"
        now: Reference time for block expiry and the "today" check
        include_blocks: Whether checkout holds count as conflicts
        exclude_payment_txn_id: Bookings of this payment are not conflicts

    Returns:
        One dict per resolved station, in resolution order.
    """
    config = config or get_booking_config()
    now = now or datetime.now()

    # Step 1: Validate inputs
    parse_date(booking_date)
    slot = parse_slot(start_time, end_time)

    # Step 2: Resolve stations
    stations = resolve_stations(db, split_station_refs(station_refs))
    station_ids = [s.id for s in stations]

    # Steps 3-5: Collect conflicts per source
    booked = _booking_conflicts(
        db, station_ids, booking_date, slot, config, exclude_payment_txn_id
    )
    blocked = (
        _block_conflicts(db, station_ids, booking_date, slot, now)
        if include_blocks else set()
    )
    in_use = (
        _session_conflicts(db, station_ids, slot)
        if booking_date == now.date().isoformat() else set()
    )

    # Step 6: One reason per station, booking > block > session
    result = []
    for station in stations:
        reason = None
        if station.id in booked:
            reason = REASON_BOOKED
        elif station.id in blocked:
            reason = REASON_BLOCKED
        elif station.id in in_use:
            reason = REASON_IN_USE

        result.append({
            "station_id": station.id,
            "station_name": station.name,
            "station_type": station.type,
            "hourly_rate": station.hourly_rate,
            "is_available": reason is None,
            "conflict_reason": reason,
        })

    logger.info(
        f"[AVAIL] date={booking_date} slot={slot} "
        f"available={sum(1 for r in result if r['is_available'])}/{len(result)}"
    )
    return result


def _booking_conflicts(
    db: Session,
    station_ids: list[str],
    booking_date: str,
    slot: Slot,
    config: BookingConfig,
    exclude_payment_txn_id: Optional[str],
) -> set[str]:
    """Stations with an active booking overlapping the slot."""
    with storage_errors("Booking lookup"):
        bookings = (
            db.query(DBBookings)
            .filter(
                DBBookings.station_id.in_(station_ids),
                DBBookings.booking_date == booking_date,
                DBBookings.status.in_(config.blocking_statuses),
            )
            .all()
        )

    conflicts: set[str] = set()
    for booking in bookings:
        if exclude_payment_txn_id and booking.payment_txn_id == exclude_payment_txn_id:
            continue
        existing = Slot(booking.start_time, booking.end_time)
        if slot.overlaps(existing):
            conflicts.add(booking.station_id)
    return conflicts


def _block_conflicts(
    db: Session,
    station_ids: list[str],
    booking_date: str,
    slot: Slot,
    now: datetime,
) -> set[str]:
    """Stations held by a live checkout for exactly this slot."""
    with storage_errors("Slot block lookup"):
        rows = (
            db.query(DBSlotBlocks.station_id)
            .filter(
                DBSlotBlocks.station_id.in_(station_ids),
                DBSlotBlocks.booking_date == booking_date,
                DBSlotBlocks.start_time == slot.start_time,
                DBSlotBlocks.end_time == slot.end_time,
                DBSlotBlocks.expires_at > now,
                DBSlotBlocks.is_confirmed.is_(False),
            )
            .all()
        )
    return {station_id for (station_id,) in rows}


def _session_conflicts(
    db: Session,
    station_ids: list[str],
    slot: Slot,
) -> set[str]:
    """Stations with a live session that started inside the slot."""
    with storage_errors("Session lookup"):
        sessions = (
            db.query(DBSessions)
            .filter(
                DBSessions.station_id.in_(station_ids),
                DBSessions.end_time.is_(None),
            )
            .all()
        )

    conflicts: set[str] = set()
    for session in sessions:
        started = session.start_time
        if slot.contains_minute(started.hour * 60 + started.minute):
            conflicts.add(session.station_id)
    return conflicts
