# backend/lounge/schemas/stations.py

from pydantic import BaseModel


class StationRead(BaseModel):
    id: str
    name: str
    type: str
    hourly_rate: float

    model_config = {"from_attributes": True}
