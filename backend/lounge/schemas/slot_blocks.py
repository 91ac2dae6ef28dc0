# backend/lounge/schemas/slot_blocks.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class SlotBlockCreate(BaseModel):
    station_id: str | list[str]
    booking_date: str = Field(description="YYYY-MM-DD")
    start_time: str = Field(description="HH:MM")
    end_time: str = Field(description="HH:MM")
    ttl_minutes: Optional[int] = Field(None, gt=0, le=60)
    session_id: Optional[str] = None


class SlotBlockRead(BaseModel):
    id: str
    station_id: str
    booking_date: str
    start_time: str
    end_time: str
    expires_at: datetime
    is_confirmed: bool
    session_id: Optional[str] = None
    is_active: bool = False

    model_config = {"from_attributes": True}


class SlotBlockCreateResponse(BaseModel):
    ok: bool = True
    block_ids: list[str]
    expires_at: datetime


class SlotBlockCleanupResponse(BaseModel):
    ok: bool = True
    deleted_count: int
