# hostel_allocation/services/capacity_store.py
"""
Capacity Store: bed counters for hostels and rooms.

reserve() and release() are conditional UPDATEs, so the availability check and
the counter change happen in one statement and two callers can never both take
the last bed. Neither function commits: they run inside the caller's
unit_of_work together with the ledger write. Only allocation_engine and
hostel_service call into this module.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy import case, func, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key
from hostel_allocation.errors import CapacityExhausted, NotFound
from hostel_allocation.models.allocation import Allocation
from hostel_allocation.models.enums import (
    HostelStatus, RoomStatus, LIVE_ALLOCATION_STATUSES, RESERVABLE_ROOM_STATUSES,
)
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.models.room import Room
from hostel_allocation.services.unit_of_work import run_with_retry
from hostel_allocation.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Reservation:
    """One held bed. The token is what makes release() safe to call once only."""
    token: Optional[str]
    hostel_id: str
    room_id: str

    @classmethod
    def held_by(cls, allocation: Allocation) -> "Reservation":
        return cls(token=allocation.reservation_token, hostel_id=allocation.hostel_id, room_id=allocation.room_id)


@dataclass(frozen=True)
class Availability:
    hostel_id: str
    total: int
    occupied: int
    available: int


def _expire_cached(db: Session, model, pk):
    instance = db.identity_map.get(identity_key(model, pk))
    if instance is not None:
        db.expire(instance)


def get_hostel(db: Session, hostel_id: str) -> Hostel:
    hostel = db.get(Hostel, hostel_id)
    if not hostel:
        raise NotFound("Hostel", hostel_id)
    return hostel


def get_room(db: Session, hostel_id: str, room_id: str) -> Room:
    room = db.get(Room, room_id)
    if not room or room.hostel_id != hostel_id:
        raise NotFound("Room", room_id)
    return room


def _shift_hostel(db: Session, hostel_id: str, delta: int):
    """Move ``delta`` beds from available to occupied on the hostel row."""
    guard = Hostel.available_beds >= delta if delta > 0 else Hostel.occupied_beds >= -delta
    result = db.execute(
        update(Hostel)
        .where(Hostel.id == hostel_id, guard)
        .values(
            occupied_beds=Hostel.occupied_beds + delta,
            available_beds=Hostel.available_beds - delta,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    _expire_cached(db, Hostel, hostel_id)
    if result.rowcount != 1:
        # Hostel totals drifted from its rooms; rebuild them from the room rows
        logger.warning(f"[Capacity] Hostel {hostel_id} counters out of sync, resyncing from rooms")
        sync_hostel_counters(db, hostel_id)


def reserve(db: Session, hostel_id: str, room_id: str) -> Reservation:
    """Take one bed in the room, or raise CapacityExhausted. Does not commit."""
    hostel = get_hostel(db, hostel_id)
    if hostel.status != HostelStatus.ACTIVE.value:
        raise CapacityExhausted(hostel_id, room_id, reason=f"hostel_{hostel.status}")
    room = get_room(db, hostel_id, room_id)

    result = db.execute(
        update(Room)
        .where(
            Room.id == room_id,
            Room.available_beds > 0,
            Room.status.in_(RESERVABLE_ROOM_STATUSES),
        )
        .values(
            occupied_beds=Room.occupied_beds + 1,
            available_beds=Room.available_beds - 1,
            status=case((Room.available_beds == 1, RoomStatus.OCCUPIED.value), else_=Room.status),
            version=Room.version + 1,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        reason = "no_beds_available" if room.status in RESERVABLE_ROOM_STATUSES else f"room_{room.status}"
        logger.info(f"[Capacity] Reserve rejected for room {room_id} ({reason})")
        raise CapacityExhausted(hostel_id, room_id, reason=reason)

    _expire_cached(db, Room, room_id)
    _shift_hostel(db, hostel_id, +1)

    reservation = Reservation(token=str(uuid.uuid4()), hostel_id=hostel_id, room_id=room_id)
    logger.debug(f"[Capacity] Reserved bed in room {room_id} (token={reservation.token})")
    return reservation


def release(db: Session, reservation: Reservation) -> bool:
    """
    Give the bed back. A reservation without a token has already been released,
    so the call is a no-op and returns False. Does not commit.
    """
    if not reservation.token:
        logger.debug(f"[Capacity] Release skipped for room {reservation.room_id}: no reservation held")
        return False

    result = db.execute(
        update(Room)
        .where(Room.id == reservation.room_id, Room.occupied_beds > 0)
        .values(
            occupied_beds=Room.occupied_beds - 1,
            available_beds=Room.available_beds + 1,
            status=case((Room.status == RoomStatus.OCCUPIED.value, RoomStatus.AVAILABLE.value), else_=Room.status),
            version=Room.version + 1,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    _expire_cached(db, Room, reservation.room_id)
    if result.rowcount != 1:
        logger.warning(f"[Capacity] Room {reservation.room_id} had no occupied bed to release")
        return False

    _shift_hostel(db, reservation.hostel_id, -1)
    logger.debug(f"[Capacity] Released bed in room {reservation.room_id} (token={reservation.token})")
    return True


def sync_hostel_counters(db: Session, hostel_id: str) -> Hostel:
    """Recompute hostel room/bed totals as the sum of its rooms. Does not commit."""
    room_count, total, occupied = db.query(
        func.count(Room.id),
        func.coalesce(func.sum(Room.total_beds), 0),
        func.coalesce(func.sum(Room.occupied_beds), 0),
    ).filter(Room.hostel_id == hostel_id).one()

    db.execute(
        update(Hostel)
        .where(Hostel.id == hostel_id)
        .values(
            total_rooms=room_count,
            total_beds=total,
            occupied_beds=occupied,
            available_beds=total - occupied,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    _expire_cached(db, Hostel, hostel_id)
    return get_hostel(db, hostel_id)


def get_availability(db: Session, hostel_id: str) -> Availability:
    hostel = get_hostel(db, hostel_id)
    return Availability(
        hostel_id=hostel.id,
        total=hostel.total_beds,
        occupied=hostel.occupied_beds,
        available=hostel.available_beds,
    )


def reconcile_occupancy(db: Session, hostel_id: str, actor_id: str) -> Hostel:
    """
    Repair pass: recount every room's occupied beds from live allocations and
    re-sync the hostel. Rooms are locked for the duration on PostgreSQL so
    concurrent allocations wait rather than interleave.
    """
    def _work():
        hostel = get_hostel(db, hostel_id)
        rooms = (
            db.query(Room)
            .filter(Room.hostel_id == hostel_id)
            .order_by(Room.id)
            .with_for_update()
            .all()
        )
        live_counts = dict(
            db.query(Allocation.room_id, func.count(Allocation.id))
            .filter(Allocation.hostel_id == hostel_id, Allocation.status.in_(LIVE_ALLOCATION_STATUSES))
            .group_by(Allocation.room_id)
            .all()
        )
        changed = 0
        for room in rooms:
            live = live_counts.get(room.id, 0)
            if live > room.total_beds:
                logger.error(f"[Capacity] Room {room.room_number} holds {live} live allocations "
                             f"for {room.total_beds} beds")
                live = room.total_beds
            if live == room.occupied_beds:
                continue
            room.occupied_beds = live
            room.available_beds = room.total_beds - live
            if room.available_beds == 0 and room.status == RoomStatus.AVAILABLE.value:
                room.status = RoomStatus.OCCUPIED.value
            elif room.available_beds > 0 and room.status == RoomStatus.OCCUPIED.value:
                room.status = RoomStatus.AVAILABLE.value
            room.version += 1
            changed += 1
        db.flush()
        hostel = sync_hostel_counters(db, hostel_id)
        hostel.updated_by = actor_id
        logger.info(f"[Capacity] Reconciled hostel {hostel_id}: {changed} room(s) corrected, "
                    f"{hostel.occupied_beds}/{hostel.total_beds} occupied")
        return hostel

    return run_with_retry(db, "reconcile_occupancy", _work, hostel_id)
