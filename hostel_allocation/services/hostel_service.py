# hostel_allocation/services/hostel_service.py
"""
Hostel catalogue: administrative writes and listings for hostels and rooms.
Occupancy counters are never set here directly; room changes go through
capacity_store.sync_hostel_counters so hostel totals stay the sum of rooms.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional
from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from hostel_allocation.errors import AllocationError, InvalidTransition, NotFound, ValidationError
from hostel_allocation.models.allocation import Allocation
from hostel_allocation.models.enums import FacilityType, HostelStatus, HostelType, RoomStatus
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.models.room import Room
from hostel_allocation.schemas.hostel import (
    AvailableHostelFilters, BulkItemFailure, BulkUpdateReport, Facility,
    FacilityBulkItem, HostelCreate, HostelUpdate, RoomCreate, StatusBulkItem,
)
from hostel_allocation.services import capacity_store
from hostel_allocation.services.capacity_store import get_hostel, get_room
from hostel_allocation.services.unit_of_work import run_with_retry
from hostel_allocation.utils.logger import get_logger

logger = get_logger(__name__)


# ── Hostels ──────────────────────────────────────────────────────────────────

def create_hostel(db: Session, body: HostelCreate, actor_id: str) -> Hostel:
    existing = db.query(Hostel).filter(
        Hostel.school_id == body.school_id, Hostel.hostel_code == body.hostel_code
    ).first()
    if existing:
        raise ValidationError(f"Hostel code {body.hostel_code} already exists for this school",
                              field="hostel_code", hostel_id=existing.id)

    hostel = Hostel(
        school_id=body.school_id,
        hostel_name=body.hostel_name,
        hostel_code=body.hostel_code,
        hostel_type=body.hostel_type.value,
        status=HostelStatus.ACTIVE.value,
        floors=body.floors,
        building_number=body.building_number,
        warden_id=body.warden_id,
        warden_name=body.warden_name,
        warden_contact=body.warden_contact,
        facilities=[f.model_dump(mode="json") for f in body.facilities],
        rules=body.rules.model_dump(mode="json"),
        pricing=body.pricing.model_dump(mode="json"),
        amenities=list(body.amenities),
        description=body.description,
        total_rooms=0, total_beds=0, occupied_beds=0, available_beds=0,
        created_by=actor_id,
        updated_by=actor_id,
    )
    try:
        run_with_retry(db, "create_hostel", lambda: db.add(hostel))
    except IntegrityError as exc:
        raise ValidationError(f"Hostel code {body.hostel_code} already exists for this school",
                              field="hostel_code") from exc

    logger.info(f"[Hostel] Created {hostel.hostel_code} ({hostel.hostel_name}) for school {hostel.school_id}")
    return hostel


def get_hostel_by_code(db: Session, school_id: str, hostel_code: str) -> Hostel:
    hostel = db.query(Hostel).filter(
        Hostel.school_id == school_id, Hostel.hostel_code == hostel_code.upper()
    ).first()
    if not hostel:
        raise NotFound("Hostel", f"{school_id}/{hostel_code}")
    return hostel


def list_hostels(db: Session, school_id: str, hostel_type: Optional[HostelType] = None,
                 status: Optional[HostelStatus] = None, limit: Optional[int] = None,
                 offset: Optional[int] = None) -> list[Hostel]:
    q = db.query(Hostel).filter(Hostel.school_id == school_id)
    if hostel_type:
        q = q.filter(Hostel.hostel_type == hostel_type.value)
    if status:
        q = q.filter(Hostel.status == status.value)
    q = q.order_by(Hostel.hostel_name)
    if offset:
        q = q.offset(offset)
    if limit:
        q = q.limit(limit)
    return q.all()


def search_hostels(db: Session, school_id: str, query: str, limit: Optional[int] = None) -> list[Hostel]:
    pattern = f"%{query.lower()}%"
    q = db.query(Hostel).filter(
        Hostel.school_id == school_id,
        or_(
            func.lower(Hostel.hostel_name).like(pattern),
            func.lower(Hostel.hostel_code).like(pattern),
            func.lower(Hostel.description).like(pattern),
            func.lower(Hostel.warden_name).like(pattern),
        ),
    ).order_by(Hostel.hostel_name)
    if limit:
        q = q.limit(limit)
    return q.all()


def get_available_hostels(db: Session, school_id: str,
                          filters: Optional[AvailableHostelFilters] = None) -> list[Hostel]:
    """Active hostels with at least one free bed, most availability first. Read-only."""
    filters = filters or AvailableHostelFilters()
    q = db.query(Hostel).filter(
        Hostel.school_id == school_id,
        Hostel.status == HostelStatus.ACTIVE.value,
        Hostel.available_beds > 0,
    )
    if filters.hostel_type:
        q = q.filter(Hostel.hostel_type == filters.hostel_type.value)
    if filters.min_available_beds:
        q = q.filter(Hostel.available_beds >= filters.min_available_beds)
    hostels = q.order_by(Hostel.available_beds.desc(), Hostel.hostel_name).all()

    if filters.facility:
        wanted = filters.facility.value
        hostels = [
            h for h in hostels
            if any(f.get("type") == wanted and f.get("is_available", True) for f in (h.facilities or []))
        ]
    return hostels


def update_hostel(db: Session, hostel_id: str, body: HostelUpdate, actor_id: str) -> Hostel:
    hostel = get_hostel(db, hostel_id)
    changes = body.model_dump(exclude_unset=True, mode="json")
    def _work():
        for field, value in changes.items():
            setattr(hostel, field, value)
        hostel.updated_by = actor_id

    run_with_retry(db, "update_hostel", _work, hostel_id)
    logger.info(f"[Hostel] Updated {hostel_id}: {sorted(changes)}")
    return hostel


def delete_hostel(db: Session, hostel_id: str, actor_id: str):
    """
    Physically remove a hostel and its rooms. Refused while any allocation
    references it, since the ledger keeps those placements as history;
    decommission the hostel instead.
    """
    hostel = get_hostel(db, hostel_id)
    referenced = db.query(func.count(Allocation.id)).filter(Allocation.hostel_id == hostel_id).scalar()
    if referenced:
        raise InvalidTransition(
            hostel_id, hostel.status, "delete",
            message=f"Hostel {hostel.hostel_code} is referenced by {referenced} allocation(s); decommission it instead",
        )
    def _work():
        db.query(Room).filter(Room.hostel_id == hostel_id).delete(synchronize_session=False)
        db.delete(hostel)

    run_with_retry(db, "delete_hostel", _work, hostel_id)
    logger.info(f"[Hostel] Deleted {hostel_id} by {actor_id}")


def update_hostel_status(db: Session, hostel_id: str, status: HostelStatus, actor_id: str) -> Hostel:
    """Only active hostels accept new allocations; existing ones keep their beds."""
    hostel = get_hostel(db, hostel_id)
    previous = hostel.status
    def _work():
        hostel.status = status.value
        hostel.updated_by = actor_id

    run_with_retry(db, "update_hostel_status", _work, hostel_id)
    logger.info(f"[Hostel] {hostel_id} status {previous} → {status.value}")
    return hostel


def add_facility(db: Session, hostel_id: str, facility: Facility, actor_id: str) -> Hostel:
    hostel = get_hostel(db, hostel_id)
    def _work():
        kept = [f for f in (hostel.facilities or []) if f.get("type") != facility.type.value]
        hostel.facilities = kept + [facility.model_dump(mode="json")]
        hostel.updated_by = actor_id

    run_with_retry(db, "add_facility", _work, hostel_id)
    logger.info(f"[Hostel] Added facility {facility.type.value} to {hostel_id}")
    return hostel


def remove_facility(db: Session, hostel_id: str, facility_type: FacilityType, actor_id: str) -> Hostel:
    hostel = get_hostel(db, hostel_id)
    def _work():
        hostel.facilities = [f for f in (hostel.facilities or []) if f.get("type") != facility_type.value]
        hostel.updated_by = actor_id

    run_with_retry(db, "remove_facility", _work, hostel_id)
    logger.info(f"[Hostel] Removed facility {facility_type.value} from {hostel_id}")
    return hostel


# ── Bulk updates ─────────────────────────────────────────────────────────────

def _run_bulk(db: Session, school_id: str, items: Iterable, apply: Callable, label: str) -> BulkUpdateReport:
    """Apply one transaction per hostel; a failing hostel is reported and skipped."""
    report = BulkUpdateReport()
    for item in items:
        try:
            hostel = get_hostel(db, item.hostel_id)
            if hostel.school_id != school_id:
                raise ValidationError(f"Hostel {item.hostel_id} does not belong to school {school_id}",
                                      field="hostel_id", hostel_id=item.hostel_id)
            run_with_retry(db, label, lambda: apply(hostel, item), item.hostel_id)
            report.succeeded.append(item.hostel_id)
        except AllocationError as exc:
            logger.error(f"[Hostel] {label} failed for {item.hostel_id}: {exc.message}")
            report.failed.append(BulkItemFailure(hostel_id=item.hostel_id, kind=exc.kind, detail=exc.message))
        except IntegrityError as exc:
            logger.error(f"[Hostel] {label} rejected by database for {item.hostel_id}: {exc.orig}")
            report.failed.append(BulkItemFailure(hostel_id=item.hostel_id, kind="ValidationError",
                                                 detail="Update violates a database constraint"))
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"[Hostel] {label} database error for {item.hostel_id}: {exc}")
            report.failed.append(BulkItemFailure(hostel_id=item.hostel_id, kind="DatabaseError",
                                                 detail="Update could not be stored"))
    logger.info(f"[Hostel] {label}: {len(report.succeeded)} updated, {len(report.failed)} failed")
    return report


def bulk_update_facilities(db: Session, school_id: str, updates: list[FacilityBulkItem],
                           actor_id: str) -> BulkUpdateReport:
    def apply(hostel: Hostel, item: FacilityBulkItem):
        hostel.facilities = [f.model_dump(mode="json") for f in item.facilities]
        hostel.updated_by = actor_id

    return _run_bulk(db, school_id, updates, apply, "bulk_update_facilities")


def bulk_update_status(db: Session, school_id: str, updates: list[StatusBulkItem],
                       actor_id: str) -> BulkUpdateReport:
    def apply(hostel: Hostel, item: StatusBulkItem):
        hostel.status = item.status.value
        hostel.updated_by = actor_id

    return _run_bulk(db, school_id, updates, apply, "bulk_update_status")


# ── Rooms ────────────────────────────────────────────────────────────────────

def create_room(db: Session, hostel_id: str, body: RoomCreate, actor_id: str) -> Room:
    hostel = get_hostel(db, hostel_id)
    duplicate = db.query(Room).filter(Room.hostel_id == hostel_id, Room.room_number == body.room_number).first()
    if duplicate:
        raise ValidationError(f"Room {body.room_number} already exists in hostel {hostel.hostel_code}",
                              field="room_number", room_id=duplicate.id)

    room = Room(
        hostel_id=hostel_id,
        room_number=body.room_number,
        floor=body.floor,
        room_type=body.room_type.value,
        status=RoomStatus.AVAILABLE.value,
        total_beds=body.total_beds,
        occupied_beds=0,
        available_beds=body.total_beds,
        monthly_rent=body.monthly_rent,
    )

    def _work():
        db.add(room)
        db.flush()
        capacity_store.sync_hostel_counters(db, hostel_id).updated_by = actor_id
        return room

    try:
        run_with_retry(db, "create_room", _work, hostel_id)
    except IntegrityError as exc:
        raise ValidationError(f"Room {body.room_number} already exists in hostel {hostel.hostel_code}",
                              field="room_number") from exc
    logger.info(f"[Hostel] Added room {room.room_number} ({room.total_beds} beds) to {hostel.hostel_code}")
    return room


def list_rooms(db: Session, hostel_id: str, status: Optional[RoomStatus] = None,
               only_available: bool = False) -> list[Room]:
    get_hostel(db, hostel_id)
    q = db.query(Room).filter(Room.hostel_id == hostel_id)
    if status:
        q = q.filter(Room.status == status.value)
    if only_available:
        q = q.filter(Room.available_beds > 0)
    return q.order_by(Room.room_number).all()


def update_room_capacity(db: Session, hostel_id: str, room_id: str, total_beds: int, actor_id: str) -> Room:
    """Resize a room. Cannot drop below the beds currently occupied."""
    room = get_room(db, hostel_id, room_id)

    def _work():
        result = db.execute(
            update(Room)
            .where(Room.id == room_id, Room.occupied_beds <= total_beds)
            .values(
                total_beds=total_beds,
                available_beds=total_beds - Room.occupied_beds,
                status=case(
                    (Room.status.in_((RoomStatus.AVAILABLE.value, RoomStatus.OCCUPIED.value)),
                     case((Room.occupied_beds == total_beds, RoomStatus.OCCUPIED.value),
                          else_=RoomStatus.AVAILABLE.value)),
                    else_=Room.status,
                ),
                version=Room.version + 1,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationError(
                f"Room {room.room_number} has more occupied beds than {total_beds}",
                field="total_beds", room_id=room_id,
            )
        db.expire(room)
        capacity_store.sync_hostel_counters(db, hostel_id).updated_by = actor_id
        return room

    run_with_retry(db, "update_room_capacity", _work, room_id)
    logger.info(f"[Hostel] Room {room_id} resized to {total_beds} beds by {actor_id}")
    return room


def update_room_status(db: Session, hostel_id: str, room_id: str, status: RoomStatus, actor_id: str) -> Room:
    """
    Maintenance/quarantine states stop new reservations; current occupants keep
    their beds. Setting ``available`` on a full room is stored as ``occupied``.
    """
    room = get_room(db, hostel_id, room_id)
    target = status.value
    if status in (RoomStatus.AVAILABLE, RoomStatus.OCCUPIED):
        # Decided against the live counter, not the copy loaded above
        target = case((Room.available_beds == 0, RoomStatus.OCCUPIED.value), else_=RoomStatus.AVAILABLE.value)
    def _work():
        db.execute(
            update(Room)
            .where(Room.id == room_id)
            .values(status=target, version=Room.version + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.expire(room)

    run_with_retry(db, "update_room_status", _work, room_id)
    logger.info(f"[Hostel] Room {room_id} status → {room.status} by {actor_id}")
    return room
