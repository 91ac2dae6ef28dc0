# backend/lounge/routers/stations.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import storage_errors
from ..models.generated import Stations as DBStations
from ..schemas.stations import StationRead

router = APIRouter(prefix="/stations", tags=["stations"])


@router.get("/", response_model=list[StationRead])
def list_stations(db: Session = Depends(get_db)):
    """Active stations, by name."""
    with storage_errors("Station list"):
        return (
            db.query(DBStations)
            .filter(DBStations.is_active == 1)
            .order_by(DBStations.name)
            .all()
        )
