# hostel_allocation/routers/hostels.py
"""Hostel catalogue, rooms and capacity endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from hostel_allocation.database import get_db
from hostel_allocation.dependencies import get_actor_id
from hostel_allocation.models.enums import FacilityType, HostelStatus, HostelType, RoomStatus
from hostel_allocation.schemas.hostel import (
    AvailabilityOut, AvailableHostelFilters, BulkUpdateReport, Facility, FacilityBulkItem,
    HostelCreate, HostelOut, HostelStatusUpdate, HostelUpdate, RoomCapacityUpdate, RoomCreate,
    RoomOut, RoomStatusUpdate, StatusBulkItem,
)
from hostel_allocation.services import capacity_store, hostel_service

router = APIRouter()


@router.post("/hostels", response_model=HostelOut, status_code=201, summary="Create a hostel")
def create_hostel(body: HostelCreate, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    return hostel_service.create_hostel(db, body, actor_id)


@router.get("/hostels/{hostel_id}", response_model=HostelOut)
def get_hostel(hostel_id: str, db: Session = Depends(get_db)):
    return capacity_store.get_hostel(db, hostel_id)


@router.get("/hostels/code/{school_id}/{hostel_code}", response_model=HostelOut)
def get_hostel_by_code(school_id: str, hostel_code: str, db: Session = Depends(get_db)):
    return hostel_service.get_hostel_by_code(db, school_id, hostel_code)


@router.put("/hostels/{hostel_id}", response_model=HostelOut)
def update_hostel(hostel_id: str, body: HostelUpdate, db: Session = Depends(get_db),
                  actor_id: str = Depends(get_actor_id)):
    return hostel_service.update_hostel(db, hostel_id, body, actor_id)


@router.delete("/hostels/{hostel_id}", status_code=204)
def delete_hostel(hostel_id: str, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    hostel_service.delete_hostel(db, hostel_id, actor_id)


@router.get("/schools/{school_id}/hostels", response_model=list[HostelOut])
def list_hostels(school_id: str, hostel_type: Optional[HostelType] = None, status: Optional[HostelStatus] = None,
                 limit: Optional[int] = None, offset: Optional[int] = None, db: Session = Depends(get_db)):
    return hostel_service.list_hostels(db, school_id, hostel_type, status, limit, offset)


@router.get("/schools/{school_id}/hostels/search", response_model=list[HostelOut])
def search_hostels(school_id: str, q: str, limit: Optional[int] = None, db: Session = Depends(get_db)):
    return hostel_service.search_hostels(db, school_id, q, limit)


@router.get("/schools/{school_id}/hostels/available", response_model=list[HostelOut],
            summary="Hostels with free beds, for availability listings")
def get_available_hostels(school_id: str, hostel_type: Optional[HostelType] = None,
                          min_available_beds: Optional[int] = None, facility: Optional[FacilityType] = None,
                          db: Session = Depends(get_db)):
    filters = AvailableHostelFilters(hostel_type=hostel_type, min_available_beds=min_available_beds,
                                     facility=facility)
    return hostel_service.get_available_hostels(db, school_id, filters)


@router.get("/hostels/{hostel_id}/availability", response_model=AvailabilityOut)
def get_availability(hostel_id: str, db: Session = Depends(get_db)):
    return capacity_store.get_availability(db, hostel_id)


@router.put("/hostels/{hostel_id}/status", response_model=HostelOut)
def update_hostel_status(hostel_id: str, body: HostelStatusUpdate, db: Session = Depends(get_db),
                         actor_id: str = Depends(get_actor_id)):
    return hostel_service.update_hostel_status(db, hostel_id, body.status, actor_id)


@router.put("/hostels/{hostel_id}/occupancy", response_model=HostelOut,
            summary="Recount occupancy from live allocations")
def reconcile_occupancy(hostel_id: str, db: Session = Depends(get_db), actor_id: str = Depends(get_actor_id)):
    """Use after manual data fixes or when hostel and room counters disagree."""
    return capacity_store.reconcile_occupancy(db, hostel_id, actor_id)


@router.post("/hostels/{hostel_id}/facilities", response_model=HostelOut)
def add_facility(hostel_id: str, body: Facility, db: Session = Depends(get_db),
                 actor_id: str = Depends(get_actor_id)):
    return hostel_service.add_facility(db, hostel_id, body, actor_id)


@router.delete("/hostels/{hostel_id}/facilities/{facility_type}", response_model=HostelOut)
def remove_facility(hostel_id: str, facility_type: FacilityType, db: Session = Depends(get_db),
                    actor_id: str = Depends(get_actor_id)):
    return hostel_service.remove_facility(db, hostel_id, facility_type, actor_id)


@router.post("/schools/{school_id}/hostels/bulk-facilities", response_model=BulkUpdateReport,
             summary="Replace facilities hostel by hostel; failures are reported per item")
def bulk_update_facilities(school_id: str, body: list[FacilityBulkItem], db: Session = Depends(get_db),
                           actor_id: str = Depends(get_actor_id)):
    return hostel_service.bulk_update_facilities(db, school_id, body, actor_id)


@router.post("/schools/{school_id}/hostels/bulk-status", response_model=BulkUpdateReport,
             summary="Change status hostel by hostel; failures are reported per item")
def bulk_update_status(school_id: str, body: list[StatusBulkItem], db: Session = Depends(get_db),
                       actor_id: str = Depends(get_actor_id)):
    return hostel_service.bulk_update_status(db, school_id, body, actor_id)


# ── Rooms ────────────────────────────────────────────────────────────────────

@router.post("/hostels/{hostel_id}/rooms", response_model=RoomOut, status_code=201)
def create_room(hostel_id: str, body: RoomCreate, db: Session = Depends(get_db),
                actor_id: str = Depends(get_actor_id)):
    return hostel_service.create_room(db, hostel_id, body, actor_id)


@router.get("/hostels/{hostel_id}/rooms", response_model=list[RoomOut])
def list_rooms(hostel_id: str, status: Optional[RoomStatus] = None, only_available: bool = False,
               db: Session = Depends(get_db)):
    return hostel_service.list_rooms(db, hostel_id, status, only_available)


@router.put("/hostels/{hostel_id}/rooms/{room_id}/capacity", response_model=RoomOut)
def update_room_capacity(hostel_id: str, room_id: str, body: RoomCapacityUpdate, db: Session = Depends(get_db),
                         actor_id: str = Depends(get_actor_id)):
    return hostel_service.update_room_capacity(db, hostel_id, room_id, body.total_beds, actor_id)


@router.put("/hostels/{hostel_id}/rooms/{room_id}/status", response_model=RoomOut)
def update_room_status(hostel_id: str, room_id: str, body: RoomStatusUpdate, db: Session = Depends(get_db),
                       actor_id: str = Depends(get_actor_id)):
    return hostel_service.update_room_status(db, hostel_id, room_id, body.status, actor_id)
