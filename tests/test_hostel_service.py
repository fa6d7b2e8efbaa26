# tests/test_hostel_service.py
"""Unit tests for the hostel catalogue: hostels, rooms, facilities and bulk updates."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import patch
from sqlalchemy.exc import OperationalError
from hostel_allocation.config import settings
from hostel_allocation.errors import CapacityExhausted, Contention, InvalidTransition, NotFound, ValidationError
from hostel_allocation.models.enums import FacilityType, HostelStatus, RoomStatus
from hostel_allocation.models.hostel import Hostel
from hostel_allocation.models.room import Room
from hostel_allocation.schemas.allocation import AllocationCreate
from hostel_allocation.schemas.hostel import (
    AvailableHostelFilters, Facility, FacilityBulkItem, HostelCreate, HostelUpdate, RoomCreate, StatusBulkItem,
)
from hostel_allocation.services import allocation_engine, capacity_store, hostel_service
from tests.factories import ACTOR, SCHOOL, YEAR, add_hostel, add_room


def wifi():
    return Facility(type=FacilityType.WIFI, name="Campus WiFi")


def failing_commits(db, failures, message="database is locked"):
    """Make the first `failures` commits raise, then commit normally."""
    real_commit = db.commit
    calls = {"n": 0}

    def commit():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise OperationalError("COMMIT", {}, Exception(message))
        return real_commit()

    return patch.object(db, "commit", side_effect=commit)


class TestHostels:
    def test_create_normalises_code_and_starts_empty(self, db):
        body = HostelCreate(school_id=SCHOOL, hostel_name="North Block", hostel_code=" nb-1 ", facilities=[wifi()])
        hostel = hostel_service.create_hostel(db, body, ACTOR)

        assert hostel.hostel_code == "NB-1"
        assert hostel.status == "active"
        assert (hostel.total_beds, hostel.available_beds) == (0, 0)
        assert hostel.facilities[0]["type"] == "wifi"
        assert hostel_service.get_hostel_by_code(db, SCHOOL, "nb-1").id == hostel.id

    def test_duplicate_code_in_same_school_is_rejected(self, db):
        body = HostelCreate(school_id=SCHOOL, hostel_name="North Block", hostel_code="NB")
        hostel_service.create_hostel(db, body, ACTOR)
        with pytest.raises(ValidationError) as exc:
            hostel_service.create_hostel(db, body, ACTOR)
        assert exc.value.details["field"] == "hostel_code"

    def test_update_applies_only_given_fields(self, db, seeded):
        hostel = hostel_service.update_hostel(
            db, seeded["hostel_id"], HostelUpdate(warden_name="Ms. Okafor"), "admin-2"
        )
        assert hostel.warden_name == "Ms. Okafor"
        assert hostel.hostel_name == "Hostel H1"
        assert hostel.updated_by == "admin-2"

    def test_search_matches_name_and_code(self, db, seeded):
        add_hostel(db, code="ANNEX")
        db.commit()
        assert [h.hostel_code for h in hostel_service.search_hostels(db, SCHOOL, "annex")] == ["ANNEX"]
        assert len(hostel_service.search_hostels(db, SCHOOL, "hostel")) == 2

    def test_delete_refused_while_allocations_reference_hostel(self, db, seeded):
        body = AllocationCreate(student_id="s-1", academic_year=YEAR,
                                hostel_id=seeded["hostel_id"], room_id=seeded["room_101"])
        allocation_engine.allocate(db, body, ACTOR)

        with pytest.raises(InvalidTransition):
            hostel_service.delete_hostel(db, seeded["hostel_id"], ACTOR)

    def test_delete_removes_hostel_and_rooms(self, db, seeded):
        hostel_service.delete_hostel(db, seeded["hostel_id"], ACTOR)

        assert db.get(Hostel, seeded["hostel_id"]) is None
        assert db.query(Room).count() == 0

    def test_inactive_hostel_stops_new_allocations(self, db, seeded):
        hostel_service.update_hostel_status(db, seeded["hostel_id"], HostelStatus.UNDER_MAINTENANCE, ACTOR)
        with pytest.raises(CapacityExhausted):
            capacity_store.reserve(db, seeded["hostel_id"], seeded["room_101"])

    def test_busy_database_surfaces_as_contention(self, db, seeded):
        with failing_commits(db, settings.CONTENTION_MAX_ATTEMPTS):
            with pytest.raises(Contention):
                hostel_service.update_hostel_status(db, seeded["hostel_id"], HostelStatus.INACTIVE, ACTOR)

        assert db.get(Hostel, seeded["hostel_id"], populate_existing=True).status == "active"


class TestAvailability:
    def test_available_hostels_filters_and_orders(self, db):
        big = add_hostel(db, code="BIG", facilities=[wifi().model_dump(mode="json")])
        add_room(db, big, "1", 4)
        small = add_hostel(db, code="SMALL")
        add_room(db, small, "1", 1)
        full = add_hostel(db, code="FULL")
        add_room(db, full, "1", 1, occupied=1)
        closed = add_hostel(db, code="CLOSED", status="closed")
        add_room(db, closed, "1", 5)
        db.commit()

        codes = [h.hostel_code for h in hostel_service.get_available_hostels(db, SCHOOL)]
        assert codes == ["BIG", "SMALL"]

        with_wifi = hostel_service.get_available_hostels(db, SCHOOL, AvailableHostelFilters(facility="wifi"))
        assert [h.hostel_code for h in with_wifi] == ["BIG"]

        roomy = hostel_service.get_available_hostels(db, SCHOOL, AvailableHostelFilters(min_available_beds=2))
        assert [h.hostel_code for h in roomy] == ["BIG"]

    def test_facilities_add_replace_remove(self, db, seeded):
        hostel_service.add_facility(db, seeded["hostel_id"], wifi(), ACTOR)
        hostel = hostel_service.add_facility(
            db, seeded["hostel_id"], Facility(type=FacilityType.WIFI, name="Fibre"), ACTOR
        )
        assert [f["name"] for f in hostel.facilities] == ["Fibre"]

        hostel = hostel_service.remove_facility(db, seeded["hostel_id"], FacilityType.WIFI, ACTOR)
        assert hostel.facilities == []


class TestBulkUpdates:
    def test_status_bulk_update_reports_partial_success(self, db, seeded):
        report = hostel_service.bulk_update_status(db, SCHOOL, [
            StatusBulkItem(hostel_id=seeded["hostel_id"], status=HostelStatus.INACTIVE),
            StatusBulkItem(hostel_id="missing", status=HostelStatus.INACTIVE),
        ], ACTOR)

        assert report.succeeded == [seeded["hostel_id"]]
        assert [(f.hostel_id, f.kind) for f in report.failed] == [("missing", "NotFound")]
        assert report.partial
        assert db.get(Hostel, seeded["hostel_id"]).status == "inactive"

    def test_facility_bulk_update_rejects_other_school(self, db, seeded):
        other = add_hostel(db, code="X", school_id="school-2")
        other_id = other.id
        db.commit()

        report = hostel_service.bulk_update_facilities(db, SCHOOL, [
            FacilityBulkItem(hostel_id=seeded["hostel_id"], facilities=[wifi()]),
            FacilityBulkItem(hostel_id=other_id, facilities=[wifi()]),
        ], ACTOR)

        assert report.succeeded == [seeded["hostel_id"]]
        assert report.failed[0].kind == "ValidationError"
        assert db.get(Hostel, other_id).facilities == []

    def two_hostels(self, db, seeded):
        second = add_hostel(db, code="H2")
        second_id = second.id
        db.commit()
        return [
            StatusBulkItem(hostel_id=seeded["hostel_id"], status=HostelStatus.UNDER_MAINTENANCE),
            StatusBulkItem(hostel_id=second_id, status=HostelStatus.UNDER_MAINTENANCE),
        ]

    def test_busy_database_is_retried_per_item(self, db, seeded):
        items = self.two_hostels(db, seeded)

        with failing_commits(db, 1):
            report = hostel_service.bulk_update_status(db, SCHOOL, items, ACTOR)

        assert report.succeeded == [i.hostel_id for i in items]
        assert report.failed == []

    def test_contention_on_one_hostel_does_not_stop_the_rest(self, db, seeded):
        items = self.two_hostels(db, seeded)

        with failing_commits(db, settings.CONTENTION_MAX_ATTEMPTS):
            report = hostel_service.bulk_update_status(db, SCHOOL, items, ACTOR)

        assert report.succeeded == [items[1].hostel_id]
        assert [(f.hostel_id, f.kind) for f in report.failed] == [(items[0].hostel_id, "Contention")]
        assert db.get(Hostel, items[0].hostel_id, populate_existing=True).status == "active"
        assert db.get(Hostel, items[1].hostel_id, populate_existing=True).status == "under_maintenance"

    def test_database_error_on_one_hostel_is_reported(self, db, seeded):
        items = self.two_hostels(db, seeded)

        with failing_commits(db, 1, message="disk I/O error"):
            report = hostel_service.bulk_update_status(db, SCHOOL, items, ACTOR)

        assert report.succeeded == [items[1].hostel_id]
        assert [(f.hostel_id, f.kind) for f in report.failed] == [(items[0].hostel_id, "DatabaseError")]
        assert db.get(Hostel, items[0].hostel_id, populate_existing=True).status == "active"


class TestRooms:
    def test_create_room_updates_hostel_totals(self, db, seeded):
        room = hostel_service.create_room(db, seeded["hostel_id"], RoomCreate(room_number="103", total_beds=3), ACTOR)

        hostel = db.get(Hostel, seeded["hostel_id"], populate_existing=True)
        assert room.available_beds == 3
        assert (hostel.total_rooms, hostel.total_beds, hostel.available_beds) == (3, 6, 6)

    def test_duplicate_room_number_is_rejected(self, db, seeded):
        with pytest.raises(ValidationError):
            hostel_service.create_room(db, seeded["hostel_id"], RoomCreate(room_number="101", total_beds=1), ACTOR)

    def test_shrinking_below_occupancy_is_rejected(self, db, seeded):
        for student in ("s-1", "s-2"):
            allocation_engine.allocate(db, AllocationCreate(
                student_id=student, academic_year=YEAR,
                hostel_id=seeded["hostel_id"], room_id=seeded["room_101"]), ACTOR)

        with pytest.raises(ValidationError):
            hostel_service.update_room_capacity(db, seeded["hostel_id"], seeded["room_101"], 1, ACTOR)

        room = hostel_service.update_room_capacity(db, seeded["hostel_id"], seeded["room_101"], 4, ACTOR)
        assert (room.total_beds, room.occupied_beds, room.available_beds, room.status) == (4, 2, 2, "available")
        hostel = db.get(Hostel, seeded["hostel_id"], populate_existing=True)
        assert (hostel.total_beds, hostel.occupied_beds) == (5, 2)

    def test_room_status_follows_counters(self, db, seeded):
        capacity_store.reserve(db, seeded["hostel_id"], seeded["room_102"])
        db.commit()

        room = hostel_service.update_room_status(
            db, seeded["hostel_id"], seeded["room_102"], RoomStatus.UNDER_MAINTENANCE, ACTOR
        )
        assert room.status == "under_maintenance"

        room = hostel_service.update_room_status(
            db, seeded["hostel_id"], seeded["room_102"], RoomStatus.AVAILABLE, ACTOR
        )
        assert room.status == "occupied"

    def test_rooms_of_unknown_hostel(self, db):
        with pytest.raises(NotFound):
            hostel_service.list_rooms(db, "missing")
