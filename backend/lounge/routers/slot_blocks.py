# backend/lounge/routers/slot_blocks.py
"""
Checkout hold endpoints.

POST /slot-blocks         - Hold a slot on one or more stations
GET  /slot-blocks/{id}    - Read a hold and whether it is still active
POST /slot-blocks/cleanup - Delete expired, unconfirmed holds
"""

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.slot_blocks import (
    SlotBlockCleanupResponse,
    SlotBlockCreate,
    SlotBlockCreateResponse,
    SlotBlockRead,
)
from ..services.slots import (
    create_blocks,
    get_block,
    purge_expired_blocks,
    resolve_stations,
    split_station_refs,
)
from ..services.slots.blocks import is_block_active

router = APIRouter(prefix="/slot-blocks", tags=["slot-blocks"])


@router.post("/", response_model=SlotBlockCreateResponse, status_code=status.HTTP_201_CREATED)
def create_slot_blocks(
    data: SlotBlockCreate,
    db: Session = Depends(get_db),
):
    stations = resolve_stations(db, split_station_refs(data.station_id))
    now = datetime.now()
    ttl = timedelta(minutes=data.ttl_minutes) if data.ttl_minutes else None

    blocks = create_blocks(
        db,
        [s.id for s in stations],
        data.booking_date,
        data.start_time,
        data.end_time,
        ttl=ttl,
        now=now,
        session_id=data.session_id,
    )
    return SlotBlockCreateResponse(
        block_ids=[b.id for b in blocks],
        expires_at=blocks[0].expires_at,
    )


@router.post("/cleanup", response_model=SlotBlockCleanupResponse)
def cleanup_slot_blocks(db: Session = Depends(get_db)):
    return SlotBlockCleanupResponse(deleted_count=purge_expired_blocks(db))


@router.get("/{id}", response_model=SlotBlockRead)
def read_slot_block(id: str, db: Session = Depends(get_db)):
    block = get_block(db, id)
    result = SlotBlockRead.model_validate(block)
    result.is_active = is_block_active(block, datetime.now())
    return result
