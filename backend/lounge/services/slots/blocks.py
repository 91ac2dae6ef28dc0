# backend/lounge/services/slots/blocks.py
"""
Checkout holds (slot blocks).

A hold keeps a station/slot out of other customers' availability while
its owner pays. Holds are advisory:
- Nothing is unique at creation; several holds may coexist on one slot
- Expiry is passive: expires_at is compared against `now` wherever holds
  are read, nothing here deletes them on a timer
- The committer flips is_confirmed once the booking exists
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import NotFound, StorageError, storage_errors
from ...models.generated import SlotBlocks as DBSlotBlocks
from .config import BookingConfig, get_booking_config
from .intervals import Slot, parse_date, parse_slot

logger = logging.getLogger(__name__)


def create_block(
    db: Session,
    station_id: str,
    booking_date: str,
    start_time: str,
    end_time: str,
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None,
    session_id: Optional[str] = None,
) -> DBSlotBlocks:
    """Insert an unconfirmed hold expiring at now + ttl."""
    return create_blocks(
        db, [station_id], booking_date, start_time, end_time,
        ttl=ttl, now=now, session_id=session_id,
    )[0]


def create_blocks(
    db: Session,
    station_ids: Iterable[str],
    booking_date: str,
    start_time: str,
    end_time: str,
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None,
    session_id: Optional[str] = None,
    config: Optional[BookingConfig] = None,
) -> list[DBSlotBlocks]:
    """Insert one hold per station for the same slot, in one transaction."""
    config = config or get_booking_config()
    now = now or datetime.now()
    ttl = ttl or config.slot_block_ttl

    parse_date(booking_date)
    parse_slot(start_time, end_time)

    blocks = [
        DBSlotBlocks(
            station_id=station_id,
            booking_date=booking_date,
            start_time=start_time,
            end_time=end_time,
            expires_at=now + ttl,
            is_confirmed=False,
            session_id=session_id,
        )
        for station_id in station_ids
    ]

    try:
        db.add_all(blocks)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Slot block creation failed") from e

    with storage_errors("Slot block reload"):
        for block in blocks:
            db.refresh(block)

    logger.info(
        f"[BLOCK] Created {len(blocks)} hold(s) {booking_date} {start_time}-{end_time} "
        f"until {(now + ttl).isoformat(timespec='seconds')}"
    )
    return blocks


def get_block(db: Session, block_id: str) -> DBSlotBlocks:
    with storage_errors("Slot block lookup"):
        block = db.get(DBSlotBlocks, block_id)
    if block is None:
        raise NotFound("Slot block not found", block_id=block_id)
    return block


def is_block_active(block: DBSlotBlocks, now: datetime) -> bool:
    """Active = unconfirmed and not yet expired."""
    return not block.is_confirmed and block.expires_at > now


def confirm_blocks(
    db: Session,
    station_ids: Iterable[str],
    booking_date: str,
    slot: Slot,
    now: Optional[datetime] = None,
) -> int:
    """
    Mark live holds for exactly this slot as confirmed.

    Cleanup only: an expired hold is already ignored by availability.

    Returns:
        Number of holds confirmed.
    """
    now = now or datetime.now()
    try:
        updated = (
            db.query(DBSlotBlocks)
            .filter(
                DBSlotBlocks.station_id.in_(list(station_ids)),
                DBSlotBlocks.booking_date == booking_date,
                DBSlotBlocks.start_time == slot.start_time,
                DBSlotBlocks.end_time == slot.end_time,
                DBSlotBlocks.expires_at > now,
                DBSlotBlocks.is_confirmed.is_(False),
            )
            .update({DBSlotBlocks.is_confirmed: True}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Slot block confirmation failed") from e

    return updated


def purge_expired_blocks(db: Session, now: Optional[datetime] = None) -> int:
    """
    Delete expired, unconfirmed holds.

    Never required for correctness; exists for on-demand or cron cleanup.
    """
    now = now or datetime.now()
    try:
        deleted = (
            db.query(DBSlotBlocks)
            .filter(
                DBSlotBlocks.expires_at < now,
                DBSlotBlocks.is_confirmed.is_(False),
            )
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError("Slot block cleanup failed") from e

    logger.info(f"[BLOCK] Cleaned up {deleted} expired slot block(s)")
    return deleted
