# backend/lounge/schemas/customers.py

from typing import Optional
from pydantic import BaseModel


class CustomerRead(BaseModel):
    id: str
    name: str
    phone: str
    email: Optional[str] = None
    custom_id: Optional[str] = None
    is_member: bool
    loyalty_points: int
    total_spent: float
    total_play_time: int

    model_config = {"from_attributes": True}


class CustomerLookupResponse(BaseModel):
    ok: bool = True
    customer: CustomerRead
