# tests/test_capacity_store.py
"""Unit tests for bed reservation and release."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from sqlalchemy import update
from hostel_allocation.errors import CapacityExhausted, NotFound
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.models.room import Room
from hostel_allocation.schemas.allocation import AllocationCreate
from hostel_allocation.services import allocation_engine, capacity_store
from hostel_allocation.services.capacity_store import Reservation
from tests.factories import ACTOR, YEAR, add_hostel, add_room


def counters(db, model, pk):
    row = db.get(model, pk, populate_existing=True)
    return row.total_beds, row.occupied_beds, row.available_beds


class TestReserve:
    def test_reserve_takes_one_bed_from_room_and_hostel(self, db, seeded):
        reservation = capacity_store.reserve(db, seeded["hostel_id"], seeded["room_101"])
        db.commit()

        assert reservation.token
        assert reservation.room_id == seeded["room_101"]
        assert counters(db, Room, seeded["room_101"]) == (2, 1, 1)
        assert counters(db, Hostel, seeded["hostel_id"]) == (3, 1, 2)

    def test_last_bed_marks_room_occupied(self, db, seeded):
        capacity_store.reserve(db, seeded["hostel_id"], seeded["room_102"])
        db.commit()

        room = db.get(Room, seeded["room_102"])
        assert room.available_beds == 0
        assert room.status == "occupied"

    def test_full_room_is_rejected_without_changes(self, db, seeded):
        capacity_store.reserve(db, seeded["hostel_id"], seeded["room_102"])
        db.commit()

        with pytest.raises(CapacityExhausted) as exc:
            capacity_store.reserve(db, seeded["hostel_id"], seeded["room_102"])
        db.rollback()

        assert exc.value.details["reason"] == "no_beds_available"
        assert counters(db, Room, seeded["room_102"]) == (1, 1, 0)
        assert counters(db, Hostel, seeded["hostel_id"]) == (3, 1, 2)

    def test_room_under_maintenance_is_not_reservable(self, db):
        hostel = add_hostel(db)
        room = add_room(db, hostel, "201", 2, status="under_maintenance")
        db.commit()

        with pytest.raises(CapacityExhausted) as exc:
            capacity_store.reserve(db, hostel.id, room.id)
        assert exc.value.details["reason"] == "room_under_maintenance"

    def test_inactive_hostel_is_not_reservable(self, db):
        hostel = add_hostel(db, status="inactive")
        room = add_room(db, hostel, "201", 2)
        db.commit()

        with pytest.raises(CapacityExhausted) as exc:
            capacity_store.reserve(db, hostel.id, room.id)
        assert exc.value.details["reason"] == "hostel_inactive"

    def test_room_of_another_hostel_is_not_found(self, db, seeded):
        other = add_hostel(db, code="H2")
        foreign = add_room(db, other, "1", 1)
        db.commit()

        with pytest.raises(NotFound):
            capacity_store.reserve(db, seeded["hostel_id"], foreign.id)

    def test_unknown_hostel_is_not_found(self, db):
        with pytest.raises(NotFound) as exc:
            capacity_store.reserve(db, "missing", "missing")
        assert exc.value.http_status == 404


class TestRelease:
    def test_release_returns_bed_and_reopens_room(self, db, seeded):
        reservation = capacity_store.reserve(db, seeded["hostel_id"], seeded["room_102"])
        db.commit()

        assert capacity_store.release(db, reservation) is True
        db.commit()

        room = db.get(Room, seeded["room_102"])
        assert (room.occupied_beds, room.available_beds, room.status) == (0, 1, "available")
        assert counters(db, Hostel, seeded["hostel_id"]) == (3, 0, 3)

    def test_release_without_token_is_a_no_op(self, db, seeded):
        capacity_store.reserve(db, seeded["hostel_id"], seeded["room_101"])
        db.commit()

        released = capacity_store.release(db, Reservation(None, seeded["hostel_id"], seeded["room_101"]))
        db.commit()

        assert released is False
        assert counters(db, Room, seeded["room_101"]) == (2, 1, 1)

    def test_release_of_empty_room_does_not_go_negative(self, db, seeded):
        released = capacity_store.release(db, Reservation("stale", seeded["hostel_id"], seeded["room_101"]))
        db.commit()

        assert released is False
        assert counters(db, Room, seeded["room_101"]) == (2, 0, 2)


class TestCounterRepair:
    def test_sync_rebuilds_hostel_totals_from_rooms(self, db, seeded):
        db.execute(update(Hostel).where(Hostel.id == seeded["hostel_id"])
                   .values(total_beds=10, occupied_beds=0, available_beds=10, total_rooms=5))
        db.commit()

        hostel = capacity_store.sync_hostel_counters(db, seeded["hostel_id"])
        db.commit()

        assert (hostel.total_rooms, hostel.total_beds, hostel.occupied_beds, hostel.available_beds) == (2, 3, 0, 3)

    def test_reconcile_recounts_from_live_allocations(self, db, seeded):
        request = AllocationCreate(student_id="s-1", academic_year=YEAR,
                                   hostel_id=seeded["hostel_id"], room_id=seeded["room_101"])
        allocation_engine.allocate(db, request, ACTOR)
        # Simulate a manual edit that lost the occupied bed
        db.execute(update(Room).where(Room.id == seeded["room_101"])
                   .values(occupied_beds=0, available_beds=2))
        db.commit()

        hostel = capacity_store.reconcile_occupancy(db, seeded["hostel_id"], ACTOR)

        assert counters(db, Room, seeded["room_101"]) == (2, 1, 1)
        assert (hostel.occupied_beds, hostel.available_beds) == (1, 2)
        assert hostel.updated_by == ACTOR

    def test_availability_reflects_counters(self, db, seeded):
        capacity_store.reserve(db, seeded["hostel_id"], seeded["room_101"])
        db.commit()

        availability = capacity_store.get_availability(db, seeded["hostel_id"])
        assert (availability.total, availability.occupied, availability.available) == (3, 1, 2)
