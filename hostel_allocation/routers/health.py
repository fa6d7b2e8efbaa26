# hostel_allocation/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + counter consistency.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import func, text
from hostel_allocation.database import get_db
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.models.room import Room
from datetime import datetime

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Hostels whose bed counters disagree with the sum of their rooms
    """
    result = {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "counter_drift": [],
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {type(e).__name__}"
        result["status"] = "degraded"
        return result

    room_totals = (
        db.query(
            Room.hostel_id,
            func.sum(Room.total_beds).label("total"),
            func.sum(Room.occupied_beds).label("occupied"),
        )
        .group_by(Room.hostel_id)
        .subquery()
    )
    drifted = (
        db.query(Hostel.id)
        .join(room_totals, room_totals.c.hostel_id == Hostel.id)
        .filter((Hostel.total_beds != room_totals.c.total) | (Hostel.occupied_beds != room_totals.c.occupied))
        .all()
    )
    if drifted:
        result["counter_drift"] = [row[0] for row in drifted]
        result["status"] = "degraded"

    return result
